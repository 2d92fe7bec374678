"""
Cost tool JSON response shapes.

The tool may return a bare object or the same object wrapped under its own
name (``{"finfocus": {...}}``). ``parse_response`` unwraps once right after
decoding, so models below only ever see the bare shape.

Validation failures raise ``pydantic.ValidationError``, which is a
``ValueError``, same as ``json.JSONDecodeError``; callers catch ValueError.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def unwrap_response(data: Any, tool: str = "finfocus") -> Dict[str, Any]:
    """Return the body under the ``tool`` key if present, else ``data`` itself."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    inner = data.get(tool)
    if isinstance(inner, dict):
        return inner
    return data


def parse_response(text: str, tool: str = "finfocus") -> Dict[str, Any]:
    """Decode JSON stdout and unwrap it."""
    return unwrap_response(json.loads(text), tool)


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore")


# =============================================================================
# BUDGET STATUS (`budget status --output json`)
# =============================================================================

class BudgetWire(_Wire):
    amount: float = 0.0
    currency: str = "USD"
    period: str = "monthly"


class ScopeAlertWire(_Wire):
    threshold: float
    type: str = "actual"
    triggered: bool = False


class ScopeEntry(_Wire):
    """One row of ``scopes[]``; an ``error`` marks a scope the tool could not evaluate."""
    scope: str
    type: Optional[str] = None
    key: Optional[str] = None
    spent: Optional[float] = None
    budget: Optional[float] = None
    currency: Optional[str] = None
    percent_used: Optional[float] = None
    status: Optional[str] = None
    alerts: List[ScopeAlertWire] = Field(default_factory=list)
    error: Optional[str] = None


class ScopeErrorWire(_Wire):
    scope: str
    error: str


class BudgetStatusResponse(_Wire):
    health_score: Optional[float] = None
    status: Optional[str] = None
    spent: Optional[float] = None
    remaining: Optional[float] = None
    percent_used: Optional[float] = None
    forecast: Optional[float] = None
    runway_days: Optional[float] = None
    budget: Optional[BudgetWire] = None
    scopes: List[ScopeEntry] = Field(default_factory=list)
    errors: List[ScopeErrorWire] = Field(default_factory=list)


# =============================================================================
# PROJECTED COST (`cost projected --output json`)
# =============================================================================

class SummaryWire(_Wire):
    totalMonthly: Optional[float] = None
    totalHourly: Optional[float] = None
    currency: Optional[str] = None
    resources: List[Dict[str, Any]] = Field(default_factory=list)


class DiffWire(_Wire):
    monthly_cost_change: Optional[float] = None
    percent_change: Optional[float] = None


class ProjectedCostResponse(_Wire):
    """Accepts both the summary shape and the legacy flat shape."""
    summary: Optional[SummaryWire] = None
    resources: Optional[List[Dict[str, Any]]] = None
    projected_monthly_cost: Optional[float] = None
    currency: Optional[str] = None
    diff: Optional[DiffWire] = None

    def total_monthly(self) -> float:
        if self.summary is not None and self.summary.totalMonthly is not None:
            return self.summary.totalMonthly
        return self.projected_monthly_cost or 0.0

    def report_currency(self) -> str:
        if self.summary is not None and self.summary.currency:
            return self.summary.currency
        return self.currency or "USD"

    def resource_list(self) -> List[Dict[str, Any]]:
        if self.resources is not None:
            return self.resources
        if self.summary is not None:
            return self.summary.resources
        return []


# =============================================================================
# RECOMMENDATIONS (`cost recommendations --output json`)
# =============================================================================

class RecommendationWire(_Wire):
    resource_id: str = ""
    action_type: str = ""
    description: str = ""
    estimated_savings: float = 0.0
    currency: str = "USD"


class RecommendationsSummaryWire(_Wire):
    total_count: int = 0
    total_savings: float = 0.0
    currency: str = "USD"
    count_by_action_type: Dict[str, int] = Field(default_factory=dict)


class RecommendationsResponse(_Wire):
    summary: RecommendationsSummaryWire = Field(default_factory=RecommendationsSummaryWire)
    recommendations: List[RecommendationWire] = Field(default_factory=list)
