"""
Budget guardrails.

Every check returns a ``BudgetThresholdResult``. Malformed thresholds and
missing data never fail a build: they warn and pass.
"""
from __future__ import annotations

import logging
import re
from enum import IntEnum
from typing import TYPE_CHECKING, Optional

from .models import (
    SEVERITY_RANK,
    BudgetHealthReport,
    BudgetHealthStatus,
    BudgetThresholdResult,
    CostReport,
    ScopedBudgetReport,
    Severity,
    SustainabilityReport,
)
from .health import severity_for_status

if TYPE_CHECKING:
    from ..tool.analyzer import Analyzer
    from ..tool.version import Capabilities
    from .config import ActionConfig

logger = logging.getLogger(__name__)

THRESHOLD_PATTERN = re.compile(r"^(\d+(\.\d{1,2})?)([A-Z]{3})$")
CARBON_ABSOLUTE_PATTERN = re.compile(r"^(\d+(\.\d{1,2})?)(kg|kgCO2e)$", re.IGNORECASE)
CARBON_PERCENT_PATTERN = re.compile(r"^(\d+(\.\d{1,2})?)%$")


class BudgetExitCode(IntEnum):
    """``cost projected`` exit codes (tool v0.2.5+)."""
    PASS = 0
    WARNING = 1
    CRITICAL = 2
    EXCEEDED = 3


class BudgetThresholdMessages:
    PASS = "Budget thresholds passed"
    WARNING = "Warning: Approaching budget threshold"
    CRITICAL = "Critical: Budget threshold breached"
    EXCEEDED = "Budget exceeded"


_EXIT_CODE_RESULTS = {
    BudgetExitCode.PASS: (True, Severity.NONE, BudgetThresholdMessages.PASS),
    BudgetExitCode.WARNING: (False, Severity.WARNING, BudgetThresholdMessages.WARNING),
    BudgetExitCode.CRITICAL: (False, Severity.CRITICAL, BudgetThresholdMessages.CRITICAL),
    BudgetExitCode.EXCEEDED: (False, Severity.EXCEEDED, BudgetThresholdMessages.EXCEEDED),
}


# =============================================================================
# COST THRESHOLD
# =============================================================================

def check_threshold(threshold: Optional[str], diff: float, currency: str) -> bool:
    """True when ``diff`` exceeds a ``"<amount><CCY>"`` threshold such as ``100USD``."""
    if not threshold:
        return False

    match = THRESHOLD_PATTERN.match(threshold)
    if not match:
        logger.warning(
            f'Malformed threshold input: "{threshold}". Expected format like "100USD". Skipping guardrail.'
        )
        return False

    limit_value = float(match.group(1))
    limit_currency = match.group(3)
    if limit_currency != currency:
        logger.warning(
            f"Currency mismatch in threshold. Threshold: {limit_currency}, Report: {currency}. Skipping guardrail."
        )
        return False

    return diff > limit_value


async def check_budget_threshold_with_exit_codes(
    analyzer: "Analyzer", config: "ActionConfig"
) -> BudgetThresholdResult:
    """
    Let the tool judge the budget and map its exit code to a verdict.

    Raises:
        RuntimeError: on any exit code outside 0-3.
    """
    output = await analyzer.run_projected_exit_code(config.pulumi_plan_json_path)
    logger.debug(f"Budget threshold check exit code: {output.exit_code}")

    try:
        code = BudgetExitCode(output.exit_code)
    except ValueError:
        raise RuntimeError(f"Unexpected {analyzer.tool} exit code: {output.exit_code}") from None

    passed, severity, message = _EXIT_CODE_RESULTS[code]
    return BudgetThresholdResult(passed=passed, severity=severity, message=message, exit_code=int(code))


def check_budget_threshold_with_json(
    config: "ActionConfig", cost_report: CostReport
) -> BudgetThresholdResult:
    """Compare the projected monthly change against ``config.threshold``."""
    if not config.threshold:
        return BudgetThresholdResult.ok("No threshold configured")
    if not cost_report.has_diff:
        return BudgetThresholdResult.ok("No cost diff data available")

    change = cost_report.monthly_cost_change
    currency = cost_report.currency
    if check_threshold(config.threshold, change, currency):
        return BudgetThresholdResult(
            passed=False,
            severity=Severity.EXCEEDED,
            message=f"Cost increase of {change} {currency} exceeds threshold {config.threshold}",
        )
    return BudgetThresholdResult.ok(f"Cost within budget threshold ({change} {currency} < {config.threshold})")


async def check_budget_threshold(
    analyzer: "Analyzer",
    config: "ActionConfig",
    cost_report: CostReport,
    capabilities: "Capabilities",
) -> BudgetThresholdResult:
    """Use the tool's exit codes when it supports them, otherwise the JSON diff."""
    if capabilities.unknown:
        logger.warning(f"Could not detect {analyzer.tool} version, falling back to JSON parsing")
        return check_budget_threshold_with_json(config, cost_report)

    if capabilities.exit_codes:
        return await check_budget_threshold_with_exit_codes(analyzer, config)

    logger.warning(f"{analyzer.tool} version < 0.2.5, falling back to JSON parsing for threshold check")
    return check_budget_threshold_with_json(config, cost_report)


# =============================================================================
# CARBON THRESHOLD
# =============================================================================

def check_carbon_threshold(threshold: Optional[str], diff: float, base_total: float) -> bool:
    """
    True when the carbon change exceeds the threshold.

    ``"10kg"``/``"10.5kgCO2e"`` compare ``diff`` in kilograms; ``"10%"``
    compares ``diff / base_total``. A percent threshold against a non-positive
    base never trips.
    """
    if not threshold:
        return False

    absolute = CARBON_ABSOLUTE_PATTERN.match(threshold)
    if absolute:
        return diff > float(absolute.group(1))

    percent = CARBON_PERCENT_PATTERN.match(threshold)
    if percent:
        if base_total <= 0:
            return False
        return (diff / base_total) * 100 > float(percent.group(1))

    logger.warning(
        f'Malformed carbon threshold input: "{threshold}". Expected format like "10kg" or "10%". Skipping guardrail.'
    )
    return False


def evaluate_carbon_threshold(
    threshold: Optional[str], sustainability: Optional[SustainabilityReport]
) -> BudgetThresholdResult:
    if not threshold:
        return BudgetThresholdResult.ok("No carbon threshold configured")
    if sustainability is None:
        return BudgetThresholdResult.ok("No sustainability data available")

    diff = sustainability.total_co2e_diff
    base_total = sustainability.total_co2e - diff
    if check_carbon_threshold(threshold, diff, base_total):
        return BudgetThresholdResult(
            passed=False,
            severity=Severity.EXCEEDED,
            message=f"Carbon increase of {diff:.2f} kgCO2e/month exceeds threshold {threshold}",
        )
    return BudgetThresholdResult.ok(f"Carbon change of {diff:.2f} kgCO2e/month within threshold {threshold}")


# =============================================================================
# BUDGET HEALTH
# =============================================================================

def check_budget_health_threshold(
    min_score: Optional[float], health: Optional[BudgetHealthReport]
) -> BudgetThresholdResult:
    """Fail when the health score drops below ``min_score``."""
    if not min_score:
        return BudgetThresholdResult.ok("No health threshold configured")

    score = health.health_score if health is not None else None
    if score is None:
        logger.warning("Budget health score not available, cannot evaluate threshold")
        return BudgetThresholdResult.ok("Budget health score not available")

    if score < min_score:
        return BudgetThresholdResult(
            passed=False,
            severity=severity_for_status(health.health_status),
            message=f"Budget health score {score:g} is below threshold {min_score:g}",
        )
    return BudgetThresholdResult.ok(f"Budget health score {score:g} meets threshold {min_score:g}")


# =============================================================================
# SCOPED BUDGETS
# =============================================================================

_BREACH_STATUSES = (BudgetHealthStatus.EXCEEDED, BudgetHealthStatus.CRITICAL)


def check_scoped_budget_breach(
    report: Optional[ScopedBudgetReport], fail_on_breach: bool
) -> BudgetThresholdResult:
    """
    Fail when any evaluated scope is at or over budget, or the tool marks it
    exceeded or critical. Failed scopes are not evaluated.
    """
    if not fail_on_breach:
        return BudgetThresholdResult.ok("Scoped budget breach check disabled")
    if report is None:
        return BudgetThresholdResult.ok("No scoped budget data available")

    breached = [s for s in report.scopes if s.percent_used >= 100 or s.status in _BREACH_STATUSES]
    if not breached:
        message = f"All {len(report.scopes)} scoped budgets within limits"
        if report.failed:
            message += f" ({len(report.failed)} not evaluated: {', '.join(f.scope for f in report.failed)})"
        return BudgetThresholdResult.ok(message)

    severity = max((severity_for_status(s.status) for s in breached), key=SEVERITY_RANK.__getitem__)
    names = ", ".join(s.scope for s in breached)
    return BudgetThresholdResult(
        passed=False,
        severity=severity,
        message=f"Budget exceeded for scopes: {names}",
    )
