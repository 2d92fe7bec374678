"""Budget health classification and currency formatting helpers."""
from __future__ import annotations

from typing import Optional

from .models import BudgetHealthStatus, EquivalencyMetrics, Severity

HEALTHY_SCORE = 80
WARNING_SCORE = 50

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
}


def compute_health_status(health_score: float, spent: float, budget_amount: float) -> BudgetHealthStatus:
    """
    Classify budget health.

    Spend over budget is always ``exceeded``. A zero score is ``exceeded`` too.
    Otherwise: score >= 80 healthy, >= 50 warning, below that critical.
    """
    if spent > budget_amount:
        return BudgetHealthStatus.EXCEEDED
    if health_score <= 0:
        return BudgetHealthStatus.EXCEEDED
    if health_score >= HEALTHY_SCORE:
        return BudgetHealthStatus.HEALTHY
    if health_score >= WARNING_SCORE:
        return BudgetHealthStatus.WARNING
    return BudgetHealthStatus.CRITICAL


def status_from_percent(percent_used: float) -> BudgetHealthStatus:
    """Fallback classification when the tool reports no usable status."""
    if percent_used >= 100:
        return BudgetHealthStatus.EXCEEDED
    if percent_used >= 90:
        return BudgetHealthStatus.CRITICAL
    if percent_used >= 80:
        return BudgetHealthStatus.WARNING
    return BudgetHealthStatus.HEALTHY


def parse_health_status(value: Optional[str], percent_used: float) -> BudgetHealthStatus:
    """Normalize a status string from the tool, classifying unknown values by usage."""
    if value:
        try:
            return BudgetHealthStatus(value.strip().lower())
        except ValueError:
            pass
    return status_from_percent(percent_used)


def severity_for_status(status: BudgetHealthStatus) -> Severity:
    """Map a health status onto a breach severity (healthy maps to warning)."""
    if status == BudgetHealthStatus.EXCEEDED:
        return Severity.EXCEEDED
    if status == BudgetHealthStatus.CRITICAL:
        return Severity.CRITICAL
    return Severity.WARNING


def get_currency_symbol(currency: str = "USD") -> str:
    return CURRENCY_SYMBOLS.get((currency or "USD").upper(), currency)


def format_money(amount: float, currency: str = "USD") -> str:
    """Format an amount as ``$1890.00``; unknown currencies keep their code as prefix."""
    return f"{get_currency_symbol(currency)}{amount:.2f}"


def calculate_equivalents(total_co2e: float) -> EquivalencyMetrics:
    """
    Illustrative equivalents for a monthly kgCO2e figure.

    Approximations: one tree absorbs ~22 kg CO2 per year, a passenger car
    emits ~0.4 kg per mile, a home uses ~30 kWh per day at ~0.42 kg per kWh.
    """
    return EquivalencyMetrics(
        trees=(total_co2e * 12) / 22,
        miles_driven=total_co2e / 0.4,
        home_electricity_days=total_co2e / (30 * 0.42),
    )
