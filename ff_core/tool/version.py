"""
Cost tool version detection and capability gating.

Capabilities are resolved once per run and passed to every operation that
branches on the tool version.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Tuple

from .runner import Runner

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = "0.0.0"
EXIT_CODES_MIN_VERSION = (0, 2, 5)
SCOPED_BUDGETS_MIN_VERSION = (0, 2, 6)

_VERSION_TOKEN = re.compile(r"v?(\d+(?:\.\d+)*)")


def parse_version(version: str) -> Tuple[int, int, int]:
    """Parse ``major.minor.patch``; missing or non-numeric parts count as 0."""
    parts = (version or "").strip().lstrip("v").split(".")
    numbers = []
    for part in (parts + ["0", "0", "0"])[:3]:
        match = re.match(r"\d+", part)
        numbers.append(int(match.group(0)) if match else 0)
    return numbers[0], numbers[1], numbers[2]


def supports_exit_codes(version: str) -> bool:
    return parse_version(version) >= EXIT_CODES_MIN_VERSION


def supports_scoped_budgets(version: str) -> bool:
    return parse_version(version) >= SCOPED_BUDGETS_MIN_VERSION


def requires_scoped_budget_version(version: str, tool: str = "finfocus") -> None:
    """Raise RuntimeError when the tool is too old for scoped budgets."""
    if not supports_scoped_budgets(version):
        raise RuntimeError(f"Scoped budgets require {tool} v0.2.6+. Current version: {version}")


async def get_tool_version(runner: Runner, tool: str = "finfocus") -> str:
    """
    Return the tool's version as ``X.Y.Z``.

    Never raises: any failure to run the tool or find a version token yields
    the ``0.0.0`` sentinel.
    """
    try:
        output = await runner.run(tool, ["--version"], silent=True, ignore_return_code=True)
    except (OSError, RuntimeError) as e:
        logger.debug(f"Failed to run {tool} --version: {e}")
        return UNKNOWN_VERSION

    logger.debug(f"{tool} --version output: {output.stdout.strip()}")
    if output.exit_code != 0:
        return UNKNOWN_VERSION

    match = _VERSION_TOKEN.search(output.stdout)
    if not match:
        return UNKNOWN_VERSION
    return match.group(1)


@dataclass(frozen=True)
class Capabilities:
    """What the installed tool version can do."""
    version: str
    exit_codes: bool
    scoped_budgets: bool

    @property
    def unknown(self) -> bool:
        return self.version == UNKNOWN_VERSION

    @classmethod
    def for_version(cls, version: str) -> "Capabilities":
        return cls(
            version=version,
            exit_codes=supports_exit_codes(version),
            scoped_budgets=supports_scoped_budgets(version),
        )

    def to_dict(self):
        return {"version": self.version, "exit_codes": self.exit_codes, "scoped_budgets": self.scoped_budgets}


async def resolve_capabilities(runner: Runner, tool: str = "finfocus") -> Capabilities:
    version = await get_tool_version(runner, tool)
    capabilities = Capabilities.for_version(version)
    logger.debug(f"Detected {tool} version: {version} ({capabilities.to_dict()})")
    return capabilities
