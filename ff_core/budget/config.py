"""
ffgate configuration.

Provides:
- ActionConfig: every pipeline setting with a documented default
- Alert and period validation for the global budget
- BudgetConfigWriter: writes the budget section of the tool's config.yaml

A config file looks like::

    pulumi_plan_json_path: plan.json
    threshold: 100USD
    budget_amount: 2000
    budget_currency: USD
    budget_period: monthly
    budget_alerts: '[{"threshold": 80, "type": "actual"}]'
    fail_on_budget_health: 60
    budget_scopes: |
      provider/aws: 1000
      tag/env:prod: 500
    fail_on_budget_scope_breach: true

Every key may also be set through an ``FFGATE_<KEY>`` environment variable,
which overrides the file.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..services.config_service import get_env_settings, load_config, parse_bool
from .models import (
    DEFAULT_ALERTS,
    AlertType,
    BudgetAlert,
    BudgetConfiguration,
    BudgetPeriod,
    BudgetScope,
)
from .scopes import parse_budget_scopes

logger = logging.getLogger(__name__)

BEHAVIORS_ON_ERROR = ("fail", "warn", "silent")
GROUP_BY_OPTIONS = ("resource", "type", "provider", "service", "region", "tag")


def validate_period(period: Optional[str]) -> BudgetPeriod:
    """Return the budget period, defaulting to monthly on anything unknown."""
    value = (period or "monthly").strip().lower()
    try:
        return BudgetPeriod(value)
    except ValueError:
        valid = ", ".join(p.value for p in BudgetPeriod)
        logger.warning(f'Invalid budget period "{period}". Supported: {valid}. Defaulting to "monthly".')
        return BudgetPeriod.MONTHLY


def parse_alerts(alerts_input: Union[str, List[Any], None]) -> List[BudgetAlert]:
    """
    Parse alert rules from a JSON string or a list of mappings.

    Invalid entries are dropped with a warning; when nothing valid remains the
    default alerts (80% actual, 100% forecasted) are used.
    """
    if alerts_input is None or (isinstance(alerts_input, str) and not alerts_input.strip()):
        return list(DEFAULT_ALERTS)

    parsed: Any = alerts_input
    if isinstance(alerts_input, str):
        try:
            parsed = json.loads(alerts_input)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse budget alerts JSON: {e}. Using default alerts.")
            return list(DEFAULT_ALERTS)

    if not isinstance(parsed, list):
        logger.warning("Budget alerts must be an array. Using default alerts.")
        return list(DEFAULT_ALERTS)

    alerts: List[BudgetAlert] = []
    for entry in parsed:
        if not isinstance(entry, dict):
            logger.warning(f"Invalid alert entry: {entry!r}. Skipping.")
            continue
        threshold = entry.get("threshold")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold <= 0:
            logger.warning(f"Invalid alert threshold: {threshold}. Skipping.")
            continue
        try:
            alert_type = AlertType(entry.get("type"))
        except ValueError:
            logger.warning(f'Invalid alert type: {entry.get("type")}. Must be "actual" or "forecasted". Skipping.')
            continue
        alerts.append(BudgetAlert(threshold=float(threshold), type=alert_type))

    if not alerts:
        logger.warning("No valid alerts found. Using default alerts.")
        return list(DEFAULT_ALERTS)

    return alerts


def _optional_float(name: str, value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f'Invalid numeric value for {name}: "{value}". Ignoring.')
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_plugin_list(value: Union[str, List[Any], None]) -> List[str]:
    """Plugin names from a comma-separated string or a list; blanks are dropped."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    return [str(p).strip() for p in items if str(p).strip()]


def _utilization_rate(value: Any) -> float:
    rate = _optional_float("utilization_rate", value)
    if rate is None:
        return 1.0
    if rate <= 0:
        logger.warning(f"Invalid utilization_rate {value}: must be positive. Using 1.0.")
        return 1.0
    return rate


@dataclass
class ActionConfig:
    """
    Settings for one pipeline run.

    Unset fields keep the defaults below; ``from_dict`` validates and coerces
    raw values once so downstream code never re-checks them.
    """
    pulumi_plan_json_path: str = "plan.json"
    pulumi_state_json_path: str = ""
    tool_command: str = "finfocus"
    behavior_on_error: str = "fail"
    debug: bool = False

    # Projected cost guardrail, e.g. "100USD"
    threshold: Optional[str] = None
    utilization_rate: float = 1.0

    install_plugins: List[str] = field(default_factory=list)

    # Configure the tool as a Pulumi policy pack instead of analyzing a plan
    analyzer_mode: bool = False
    log_level: Optional[str] = None

    include_recommendations: bool = True

    include_actual_costs: bool = False
    actual_costs_period: str = "7d"  # Nd | mtd | YYYY-MM-DD
    actual_costs_group_by: str = "provider"

    include_sustainability: bool = True
    sustainability_equivalents: bool = True
    fail_on_carbon_increase: Optional[str] = None  # "10kg" | "10%"

    budget_amount: Optional[float] = None
    budget_currency: str = "USD"
    budget_period: str = "monthly"
    budget_alerts: Union[str, List[Any], None] = None
    fail_on_budget_health: Optional[float] = None  # minimum acceptable health score

    budget_scopes: str = ""
    fail_on_budget_scope_breach: bool = False

    @property
    def budget_configured(self) -> bool:
        return self.budget_amount is not None and self.budget_amount > 0

    def budget_configuration(self) -> Optional[BudgetConfiguration]:
        """Validated global budget, or None when no positive amount is set."""
        if not self.budget_configured:
            return None
        return BudgetConfiguration(
            amount=float(self.budget_amount),
            currency=self.budget_currency or "USD",
            period=validate_period(self.budget_period),
            alerts=parse_alerts(self.budget_alerts),
        )

    def scopes(self) -> List[BudgetScope]:
        return parse_budget_scopes(self.budget_scopes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionConfig":
        """Create an ActionConfig from raw settings (snake_case or kebab-case keys)."""
        known = {f.name for f in fields(cls)}
        raw: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = str(key).replace("-", "_").lower()
            if name in known:
                raw[name] = value
            else:
                logger.debug(f"Ignoring unknown setting: {key}")

        defaults = cls()

        behavior = str(raw.get("behavior_on_error") or defaults.behavior_on_error).strip().lower()
        if behavior not in BEHAVIORS_ON_ERROR:
            logger.warning(
                f'Invalid behavior_on_error "{behavior}". Supported: {", ".join(BEHAVIORS_ON_ERROR)}. '
                f'Defaulting to "fail".'
            )
            behavior = "fail"

        scopes = raw.get("budget_scopes", defaults.budget_scopes)
        if isinstance(scopes, dict):
            # Mapping form in YAML: {"provider/aws": 1000}
            scopes = "\n".join(f"{k}: {v}" for k, v in scopes.items())

        return cls(
            pulumi_plan_json_path=str(raw.get("pulumi_plan_json_path") or defaults.pulumi_plan_json_path),
            pulumi_state_json_path=str(raw.get("pulumi_state_json_path") or ""),
            tool_command=str(raw.get("tool_command") or defaults.tool_command),
            behavior_on_error=behavior,
            debug=parse_bool(raw.get("debug"), defaults.debug),
            threshold=_optional_str(raw.get("threshold")),
            utilization_rate=_utilization_rate(raw.get("utilization_rate")),
            install_plugins=parse_plugin_list(raw.get("install_plugins")),
            analyzer_mode=parse_bool(raw.get("analyzer_mode"), defaults.analyzer_mode),
            log_level=_optional_str(raw.get("log_level")),
            include_recommendations=parse_bool(
                raw.get("include_recommendations"), defaults.include_recommendations
            ),
            include_actual_costs=parse_bool(raw.get("include_actual_costs"), defaults.include_actual_costs),
            actual_costs_period=str(raw.get("actual_costs_period") or defaults.actual_costs_period).strip(),
            actual_costs_group_by=str(raw.get("actual_costs_group_by") or defaults.actual_costs_group_by).strip(),
            include_sustainability=parse_bool(
                raw.get("include_sustainability"), defaults.include_sustainability
            ),
            sustainability_equivalents=parse_bool(
                raw.get("sustainability_equivalents"), defaults.sustainability_equivalents
            ),
            fail_on_carbon_increase=_optional_str(raw.get("fail_on_carbon_increase")),
            budget_amount=_optional_float("budget_amount", raw.get("budget_amount")),
            budget_currency=str(raw.get("budget_currency") or defaults.budget_currency).strip().upper(),
            budget_period=str(raw.get("budget_period") or defaults.budget_period),
            budget_alerts=raw.get("budget_alerts"),
            fail_on_budget_health=_optional_float("fail_on_budget_health", raw.get("fail_on_budget_health")),
            budget_scopes=str(scopes or ""),
            fail_on_budget_scope_breach=parse_bool(
                raw.get("fail_on_budget_scope_breach"), defaults.fail_on_budget_scope_breach
            ),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ActionConfig":
        """Load ActionConfig from a YAML or JSON file."""
        return cls.from_dict(load_config(path))

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "ActionConfig":
        """Build ActionConfig from FFGATE_* environment variables only."""
        return cls.from_dict(get_env_settings(environ))

    @classmethod
    def load(
        cls,
        path: Union[str, Path, None] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "ActionConfig":
        """File settings (if a file is given) overlaid with FFGATE_* environment variables."""
        data: Dict[str, Any] = dict(load_config(path)) if path else {}
        data.update(get_env_settings(environ))
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


class BudgetConfigWriter:
    """Writes the budget section the cost tool reads from ``~/.finfocus/config.yaml``."""

    def __init__(self, home: Union[str, Path, None] = None, tool_dir: str = ".finfocus"):
        self.home = Path(home) if home else Path.home()
        self.tool_dir = tool_dir

    @property
    def config_path(self) -> Path:
        return self.home / self.tool_dir / "config.yaml"

    @staticmethod
    def build(budget: BudgetConfiguration, scopes: Optional[List[BudgetScope]] = None) -> Dict[str, Any]:
        section: Dict[str, Any] = {
            "amount": budget.amount,
            "currency": budget.currency,
            "period": budget.period.value,
        }
        if budget.alerts:
            section["alerts"] = [
                {"threshold": a.threshold, "type": a.type.value} for a in budget.alerts
            ]
        if scopes:
            section["scopes"] = {s.scope: {"amount": s.amount} for s in scopes}
        return {"budget": section}

    def generate_yaml(self, budget: BudgetConfiguration, scopes: Optional[List[BudgetScope]] = None) -> str:
        header = "# finfocus budget configuration\n# Generated by ffgate\n\n"
        return header + yaml.safe_dump(self.build(budget, scopes), default_flow_style=False, sort_keys=False)

    def write(self, config: ActionConfig) -> Optional[Path]:
        """Write the tool config; returns the path, or None when no budget is configured."""
        budget = config.budget_configuration()
        if budget is None:
            logger.warning("Budget amount is not configured or invalid. Skipping budget configuration.")
            return None

        scopes = config.scopes()
        path = self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        content = self.generate_yaml(budget, scopes)
        path.write_text(content, encoding="utf-8")

        logger.debug(f"Budget config written to {path}:\n{content}")
        logger.info("Budget configuration created successfully")
        return path
