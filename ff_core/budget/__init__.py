"""
ffgate Budget - budget records, parsing and guardrails.

Provides:
- Scope parsing for ``provider/``, ``type/`` and ``tag/`` budgets
- ActionConfig and BudgetConfigWriter
- Health classification and savings reconciliation
- Guardrail checks returning BudgetThresholdResult
"""

from .models import (
    ActualCostReport,
    BudgetAlert,
    BudgetConfiguration,
    BudgetHealthReport,
    BudgetHealthStatus,
    BudgetScope,
    BudgetThresholdResult,
    Recommendation,
    ScopedBudgetReport,
    ScopedBudgetStatus,
    ScopeType,
    Severity,
)
from .scopes import parse_budget_scopes
from .savings import calculate_achievable_savings, calculate_total_possible_savings
from .health import compute_health_status
from .config import ActionConfig, BudgetConfigWriter
from .guardrails import (
    check_budget_health_threshold,
    check_budget_threshold,
    check_carbon_threshold,
    check_scoped_budget_breach,
    check_threshold,
)

__all__ = [
    "ActualCostReport",
    "BudgetAlert",
    "BudgetConfiguration",
    "BudgetHealthReport",
    "BudgetHealthStatus",
    "BudgetScope",
    "BudgetThresholdResult",
    "Recommendation",
    "ScopedBudgetReport",
    "ScopedBudgetStatus",
    "ScopeType",
    "Severity",
    "parse_budget_scopes",
    "calculate_achievable_savings",
    "calculate_total_possible_savings",
    "compute_health_status",
    "ActionConfig",
    "BudgetConfigWriter",
    "check_budget_health_threshold",
    "check_budget_threshold",
    "check_carbon_threshold",
    "check_scoped_budget_breach",
    "check_threshold",
]
