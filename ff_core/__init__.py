"""
ffgate Core Library.

Budget evaluation for infrastructure cost checks in CI:
- Budget scope, alert and period parsing
- Cost tool version gating and response normalization
- Savings reconciliation across alternative recommendations
- Cost, carbon, budget-health and scoped-budget guardrails
"""

__version__ = "0.1.0"

from .budget import (
    ActionConfig,
    BudgetScope,
    BudgetThresholdResult,
    Severity,
    calculate_achievable_savings,
    parse_budget_scopes,
)
from .tool import Analyzer, Capabilities, ProcessRunner

__all__ = [
    "__version__",
    "ActionConfig",
    "BudgetScope",
    "BudgetThresholdResult",
    "Severity",
    "calculate_achievable_savings",
    "parse_budget_scopes",
    "Analyzer",
    "Capabilities",
    "ProcessRunner",
]
