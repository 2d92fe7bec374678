"""
Scoped budget declarations.

Input is the multi-line ``budget_scopes`` setting::

    # comment lines and blank lines are ignored
    provider/aws: 1000
    type/compute: 500
    tag/env:prod: 800
    tag/k8s:app:nginx: 250

Tag keys may contain colons, so the amount separator is ambiguous. A line is
first split on its first colon; when the right-hand side is not a positive
number but still contains a colon, the whole line is split again on its last
colon instead.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Dict, List, Optional, Tuple

from .models import BudgetScope, ScopeType

logger = logging.getLogger(__name__)

SCOPE_SOFT_LIMIT = 20

SCOPE_PATTERN = re.compile(r"^(provider|type|tag)/([A-Za-z0-9_:.-]+)$")


def parse_amount(text: str) -> Optional[float]:
    """Parse a budget amount; ``None`` unless the whole string is a finite number."""
    try:
        value = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def split_scope_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Split ``line`` into ``(scope, amount_text)``.

    Returns None when the line has no colon at all.
    """
    first = line.find(":")
    if first == -1:
        return None

    scope = line[:first].strip()
    amount_text = line[first + 1:].strip()

    amount = parse_amount(amount_text)
    if (amount is None or amount <= 0) and ":" in amount_text:
        last = line.rfind(":")
        scope = line[:last].strip()
        amount_text = line[last + 1:].strip()

    return scope, amount_text


def parse_scope_line(line: str) -> Optional[BudgetScope]:
    """Parse one non-comment line, logging a warning and returning None if invalid."""
    parts = split_scope_line(line)
    if parts is None:
        logger.warning(f'Invalid scope format (missing colon): "{line}". Skipping.')
        return None

    scope, amount_text = parts
    match = SCOPE_PATTERN.match(scope)
    if not match:
        logger.warning(
            f'Invalid scope format: "{scope}". Expected: provider/*, type/*, or tag/*. Skipping.'
        )
        return None

    amount = parse_amount(amount_text)
    if amount is None or amount <= 0:
        logger.warning(
            f'Invalid amount for scope "{scope}": "{amount_text}". Must be a positive number. Skipping.'
        )
        return None

    return BudgetScope(
        scope=scope,
        scope_type=ScopeType(match.group(1)),
        scope_key=match.group(2),
        amount=amount,
    )


def parse_budget_scopes(text: Optional[str]) -> List[BudgetScope]:
    """
    Parse a multi-line scope declaration into validated ``BudgetScope`` records.

    Invalid lines are skipped with a warning. A scope declared more than once
    keeps the position of its first declaration and the amount of its last.
    """
    if not text or not text.strip():
        return []

    accepted: Dict[str, BudgetScope] = {}

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        parsed = parse_scope_line(line)
        if parsed is None:
            continue

        if parsed.scope in accepted:
            previous = accepted[parsed.scope]
            logger.warning(
                f'Scope "{parsed.scope}" declared more than once; '
                f"using the last amount ({parsed.amount}, was {previous.amount})."
            )
        accepted[parsed.scope] = parsed

    scopes = list(accepted.values())

    if len(scopes) > SCOPE_SOFT_LIMIT:
        logger.warning(
            f"Configured {len(scopes)} scopes (exceeds recommended limit of {SCOPE_SOFT_LIMIT}). "
            f"Performance and report readability may be impacted."
        )

    return scopes


def split_scope(scope: str) -> Tuple[ScopeType, str]:
    """
    Derive ``(scope_type, scope_key)`` from a canonical ``type/key`` string.

    Unknown prefixes are reported as tag scopes with the full string as key.
    """
    prefix, sep, key = scope.partition("/")
    if sep and prefix in {t.value for t in ScopeType}:
        return ScopeType(prefix), key
    return ScopeType.TAG, scope
