"""Savings reconciliation across overlapping recommendation options."""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from .models import Recommendation


def calculate_achievable_savings(recommendations: Optional[Iterable[Recommendation]]) -> float:
    """
    Total savings a user can actually realize.

    Options that share ``(resource_id, action_type)`` are alternatives (e.g.
    two resize targets for one instance), so each group contributes its best
    option only. Different action types on one resource are independent and
    are summed.
    """
    if not recommendations:
        return 0.0

    groups: Dict[Tuple[str, str], float] = {}
    for rec in recommendations:
        key = (rec.resource_id, rec.action_type)
        groups[key] = max(groups.get(key, 0.0), rec.estimated_savings)

    return sum(groups.values())


def calculate_total_possible_savings(recommendations: Optional[Iterable[Recommendation]]) -> float:
    """Raw sum of every option, as if all could be combined."""
    if not recommendations:
        return 0.0
    return sum(rec.estimated_savings for rec in recommendations)
