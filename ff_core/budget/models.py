"""
Budget value records shared by the parser, the tool adapter and the guardrails.

All records are plain dataclasses, produced once by one component and read by
the next. Raw tool JSON shapes live in ``ff_core.tool.protocol``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class ScopeType(str, Enum):
    """Budget partitioning dimension."""
    PROVIDER = "provider"
    TYPE = "type"
    TAG = "tag"


class AlertType(str, Enum):
    ACTUAL = "actual"
    FORECASTED = "forecasted"


class BudgetPeriod(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BudgetHealthStatus(str, Enum):
    """Health of budget consumption, ordered from best to worst."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


class Severity(str, Enum):
    """Severity of a threshold verdict."""
    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


SEVERITY_RANK: Dict[Severity, int] = {
    Severity.NONE: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
    Severity.EXCEEDED: 3,
}


# =============================================================================
# CONFIGURATION RECORDS
# =============================================================================

@dataclass(frozen=True)
class BudgetScope:
    """One ``<type>/<key>: <amount>`` budget declaration."""
    scope: str
    scope_type: ScopeType
    scope_key: str
    amount: float


@dataclass(frozen=True)
class BudgetAlert:
    threshold: float
    type: AlertType


DEFAULT_ALERTS: List[BudgetAlert] = [
    BudgetAlert(threshold=80, type=AlertType.ACTUAL),
    BudgetAlert(threshold=100, type=AlertType.FORECASTED),
]


@dataclass(frozen=True)
class BudgetConfiguration:
    """Validated global budget, built once per run."""
    amount: float
    currency: str = "USD"
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    alerts: List[BudgetAlert] = field(default_factory=lambda: list(DEFAULT_ALERTS))


# =============================================================================
# REPORTS
# =============================================================================

@dataclass(frozen=True)
class ActualCostItem:
    name: str
    cost: float
    currency: str


@dataclass(frozen=True)
class ActualCostReport:
    """
    Historical spend for a date range.

    ``ActualCostReport.empty(...)`` is the canonical failure value; callers
    never receive ``None`` for actual costs.
    """
    total: float
    currency: str
    start_date: str
    end_date: str
    items: List[ActualCostItem] = field(default_factory=list)

    @classmethod
    def empty(cls, start_date: str, end_date: str, currency: str = "USD") -> "ActualCostReport":
        return cls(total=0.0, currency=currency, start_date=start_date, end_date=end_date, items=[])

    @property
    def is_empty(self) -> bool:
        return self.total == 0 and not self.items

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BudgetInfo:
    amount: float
    currency: str = "USD"
    period: str = "monthly"


@dataclass(frozen=True)
class BudgetHealthReport:
    """Budget health as reported by the tool (v0.2.5+)."""
    health_score: Optional[float]
    health_status: BudgetHealthStatus
    spent: float
    remaining: float
    percent_used: float
    forecast_amount: Optional[float]
    forecast: Optional[str]
    runway_days: Optional[float]
    budget: BudgetInfo

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["health_status"] = self.health_status.value
        return data


@dataclass(frozen=True)
class ScopedBudgetAlert:
    threshold: float
    type: str
    triggered: bool


@dataclass(frozen=True)
class ScopedBudgetStatus:
    scope: str
    scope_type: ScopeType
    scope_key: str
    spent: float
    budget: float
    currency: str
    percent_used: float
    status: BudgetHealthStatus
    alerts: List[ScopedBudgetAlert] = field(default_factory=list)


@dataclass(frozen=True)
class ScopedBudgetFailure:
    scope: str
    error: str


@dataclass(frozen=True)
class ScopedBudgetReport:
    """Per-scope results; a scope is in ``scopes`` or ``failed``, never both."""
    scopes: List[ScopedBudgetStatus] = field(default_factory=list)
    failed: List[ScopedBudgetFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scopes": [
                {
                    "scope": s.scope,
                    "scope_type": s.scope_type.value,
                    "scope_key": s.scope_key,
                    "spent": s.spent,
                    "budget": s.budget,
                    "currency": s.currency,
                    "percent_used": s.percent_used,
                    "status": s.status.value,
                    "alerts": [asdict(a) for a in s.alerts],
                }
                for s in self.scopes
            ],
            "failed": [asdict(f) for f in self.failed],
        }


@dataclass(frozen=True)
class AlertStatus:
    threshold: float
    type: str
    triggered: bool


@dataclass(frozen=True)
class BudgetStatus:
    """Locally computed budget usage, used when the tool has no health data."""
    configured: bool
    amount: float
    currency: str
    period: str
    spent: float
    remaining: float
    percent_used: float
    alerts: List[AlertStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Recommendation:
    """
    One savings option. Several options may share ``(resource_id, action_type)``;
    those are alternatives, only one of which can be applied.
    """
    resource_id: str
    action_type: str
    description: str = ""
    estimated_savings: float = 0.0
    currency: str = "USD"


@dataclass(frozen=True)
class RecommendationsSummary:
    total_count: int = 0
    total_savings: float = 0.0
    currency: str = "USD"
    count_by_action_type: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RecommendationsReport:
    summary: RecommendationsSummary = field(default_factory=RecommendationsSummary)
    recommendations: List[Recommendation] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "RecommendationsReport":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CostReport:
    """Projected monthly cost of a plan (``cost projected``)."""
    total_monthly: float
    currency: str = "USD"
    monthly_cost_change: Optional[float] = None
    percent_change: Optional[float] = None
    resources: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_diff(self) -> bool:
        return self.monthly_cost_change is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_monthly": self.total_monthly,
            "currency": self.currency,
            "monthly_cost_change": self.monthly_cost_change,
            "percent_change": self.percent_change,
            "resource_count": len(self.resources),
        }


@dataclass(frozen=True)
class EquivalencyMetrics:
    trees: float
    miles_driven: float
    home_electricity_days: float


@dataclass(frozen=True)
class SustainabilityReport:
    total_co2e: float  # kgCO2e/month
    total_co2e_diff: float  # kgCO2e/month
    carbon_intensity: float  # gCO2e per currency unit
    equivalents: Optional[EquivalencyMetrics] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# VERDICTS
# =============================================================================

@dataclass(frozen=True)
class BudgetThresholdResult:
    """Uniform verdict returned by every threshold and breach check."""
    passed: bool
    severity: Severity
    message: str
    exit_code: Optional[int] = None

    @classmethod
    def ok(cls, message: str, exit_code: Optional[int] = None) -> "BudgetThresholdResult":
        return cls(passed=True, severity=Severity.NONE, message=message, exit_code=exit_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "severity": self.severity.value,
            "message": self.message,
            "exit_code": self.exit_code,
        }
