"""
Cost tool adapter.

Runs the tool with the argument set a report needs and normalizes its output
into the records in ``ff_core.budget.models``. Report operations are
fault-isolated: a failed call logs a warning and returns the report's
degenerate value (an empty report, or None). Only missing input files, bad
settings, a too-old tool for scoped budgets and a failed projected-cost run
raise.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..budget.config import GROUP_BY_OPTIONS, ActionConfig
from ..budget.health import (
    calculate_equivalents,
    compute_health_status,
    format_money,
    parse_health_status,
)
from ..budget.models import (
    ActualCostItem,
    ActualCostReport,
    AlertStatus,
    BudgetHealthReport,
    BudgetInfo,
    BudgetStatus,
    CostReport,
    Recommendation,
    RecommendationsReport,
    RecommendationsSummary,
    ScopedBudgetAlert,
    ScopedBudgetFailure,
    ScopedBudgetReport,
    ScopedBudgetStatus,
    ScopeType,
    SustainabilityReport,
)
from ..budget.scopes import split_scope
from .protocol import (
    BudgetStatusResponse,
    ProjectedCostResponse,
    RecommendationsResponse,
    ScopeEntry,
    parse_response,
)
from .runner import ExecOutput, Runner
from .version import Capabilities, requires_scoped_budget_version

logger = logging.getLogger(__name__)

MIN_CUSTOM_YEAR = 2020
MISSING_SCOPE_ERROR = "No data returned by finfocus for this scope"

_DAYS_PERIOD = re.compile(r"^(\d+)d$")
_DATE_PERIOD = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def resolve_date_range(period: str, today: Optional[date] = None) -> Tuple[str, str]:
    """
    Resolve an actual-costs period into ISO ``(from, to)`` dates.

    ``Nd`` is the last N days, ``mtd`` the current month so far and
    ``YYYY-MM-DD`` a fixed start date. ``to`` is always today.

    Raises:
        ValueError: on any other format, an impossible calendar date, a date
            before 2020 or a date in the future.
    """
    today = today or date.today()
    value = (period or "").strip()

    days = _DAYS_PERIOD.match(value)
    if days and int(days.group(1)) > 0:
        start = today - timedelta(days=int(days.group(1)))
    elif value == "mtd":
        start = today.replace(day=1)
    elif _DATE_PERIOD.match(value):
        try:
            start = datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            raise ValueError(
                f'Invalid actual-costs-period format: "{period}". Supported: 7d, 30d, mtd, or YYYY-MM-DD'
            ) from None
        if start.year < MIN_CUSTOM_YEAR:
            raise ValueError(f"Custom date too far in the past: {value}. Minimum year: {MIN_CUSTOM_YEAR}")
        if start > today:
            raise ValueError(f"Custom date cannot be in the future: {value}")
    else:
        raise ValueError(
            f'Invalid actual-costs-period format: "{period}". Supported: 7d, 30d, mtd, or YYYY-MM-DD'
        )

    return start.isoformat(), today.isoformat()


def validate_plan_file(plan_path: str) -> None:
    """Fail fast on a plan file that is missing, empty or not JSON."""
    path = Path(plan_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Pulumi plan file not found: {plan_path}. "
            f"Make sure to run 'pulumi preview --json > {plan_path}' first."
        )
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise ValueError(f"Pulumi plan file is empty: {plan_path}")
    try:
        json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"Pulumi plan file is not valid JSON: {e}") from e


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class Analyzer:
    """Runs cost tool commands and builds canonical reports."""

    def __init__(self, runner: Runner, tool: str = "finfocus", debug: bool = False):
        self.runner = runner
        self.tool = tool
        self.debug = debug

    async def _run(self, args: List[str], silent: Optional[bool] = None) -> ExecOutput:
        logger.debug(f"Command: {self.tool} {' '.join(args)}")
        if silent is None:
            silent = not self.debug
        output = await self.runner.run(self.tool, args, silent=silent, ignore_return_code=True)
        logger.debug(f"Exit code: {output.exit_code}")
        if output.stdout:
            logger.debug(f"Stdout:\n{output.stdout[:2000]}")
        if output.stderr:
            logger.debug(f"Stderr:\n{output.stderr[:2000]}")
        return output

    # -------------------------------------------------------------------------
    # Plugins
    # -------------------------------------------------------------------------

    async def install_plugins(self, plugins: List[str]) -> List[str]:
        """
        Run ``plugin install <name>`` for each plugin, in order.

        Returns the installed names.

        Raises:
            RuntimeError: an install exited non-zero; later plugins are not attempted.
        """
        names = [p.strip() for p in plugins if p and p.strip()]
        if not names:
            logger.info("No plugins to install")
            return []

        for i, name in enumerate(names, 1):
            logger.info(f"Installing plugin {i}/{len(names)}: {name}")
            output = await self._run(["plugin", "install", name], silent=False)
            if output.exit_code != 0:
                raise RuntimeError(
                    f"Failed to install plugin {name}.\n"
                    f"Exit code: {output.exit_code}\n"
                    f"Stderr: {output.stderr}\n"
                    f"Stdout: {output.stdout}"
                )
            logger.info(f'Plugin "{name}" installed successfully')

        await self._log_installed_plugins()
        return names

    async def _log_installed_plugins(self) -> None:
        try:
            output = await self._run(["plugin", "list"])
        except OSError as e:
            logger.warning(f"Could not list plugins: {e}")
            return
        logger.info(f"Installed plugins:\n{output.stdout.strip() or '(none)'}")

    # -------------------------------------------------------------------------
    # Projected cost
    # -------------------------------------------------------------------------

    async def run_analysis(self, plan_path: str, utilization_rate: float = 1.0) -> CostReport:
        """
        Run ``cost projected`` on a Pulumi plan.

        A ``utilization_rate`` other than 1.0 is passed as ``--utilization``.

        Raises:
            FileNotFoundError / ValueError: bad plan file.
            RuntimeError: the tool failed or returned unparsable output.
        """
        validate_plan_file(plan_path)

        args = ["cost", "projected", "--pulumi-json", plan_path, "--output", "json"]
        if utilization_rate != 1.0:
            args.extend(["--utilization", f"{utilization_rate:g}"])

        output = await self._run(args)
        if output.exit_code != 0:
            raise RuntimeError(
                f"{self.tool} analysis failed with exit code {output.exit_code}.\n"
                f"Stderr: {output.stderr}\n"
                f"Stdout: {output.stdout}"
            )

        try:
            body = ProjectedCostResponse.model_validate(parse_response(output.stdout, self.tool))
        except ValueError as e:
            raise RuntimeError(
                f"Failed to parse {self.tool} JSON output.\n"
                f"Error: {e}\n"
                f"Raw output: {output.stdout[:500]}..."
            ) from e

        report = CostReport(
            total_monthly=body.total_monthly(),
            currency=body.report_currency(),
            monthly_cost_change=body.diff.monthly_cost_change if body.diff else None,
            percent_change=body.diff.percent_change if body.diff else None,
            resources=body.resource_list(),
        )
        logger.debug(f"Projected monthly cost: {report.total_monthly} {report.currency}")
        return report

    async def run_projected_exit_code(self, plan_path: str) -> ExecOutput:
        """Run ``cost projected`` for its exit code only (tool v0.2.5+ severity protocol)."""
        return await self._run(["cost", "projected", "--pulumi-json", plan_path])

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    async def run_recommendations(self, plan_path: str) -> RecommendationsReport:
        validate_plan_file(plan_path)

        output = await self._run(["cost", "recommendations", "--pulumi-json", plan_path, "--output", "json"])
        if output.exit_code != 0:
            logger.warning(
                f"{self.tool} recommendations failed with exit code {output.exit_code}: {output.stderr}"
            )
            return RecommendationsReport.empty()

        try:
            body = RecommendationsResponse.model_validate(parse_response(output.stdout, self.tool))
        except ValueError as e:
            logger.warning(f"Failed to parse {self.tool} recommendations output: {e}")
            return RecommendationsReport.empty()

        report = RecommendationsReport(
            summary=RecommendationsSummary(
                total_count=body.summary.total_count,
                total_savings=body.summary.total_savings,
                currency=body.summary.currency,
                count_by_action_type=dict(body.summary.count_by_action_type),
            ),
            recommendations=[
                Recommendation(
                    resource_id=r.resource_id,
                    action_type=r.action_type,
                    description=r.description,
                    estimated_savings=r.estimated_savings,
                    currency=r.currency,
                )
                for r in body.recommendations
            ],
        )
        logger.debug(f"Total recommendations: {report.summary.total_count}")
        return report

    # -------------------------------------------------------------------------
    # Actual costs
    # -------------------------------------------------------------------------

    def _input_file_args(self, config: ActionConfig) -> List[str]:
        """State file wins over the plan; a missing state file falls back to an existing plan."""
        state = config.pulumi_state_json_path
        plan = config.pulumi_plan_json_path
        if state:
            if Path(state).exists():
                return ["--pulumi-state", state]
            if plan and Path(plan).exists():
                return ["--pulumi-json", plan]
            raise FileNotFoundError(f"Pulumi state file not found: {state}")
        if plan:
            if Path(plan).exists():
                return ["--pulumi-json", plan]
            raise FileNotFoundError(f"Pulumi plan file not found: {plan}")
        return []

    async def run_actual_costs(self, config: ActionConfig, today: Optional[date] = None) -> ActualCostReport:
        group_by = config.actual_costs_group_by
        if group_by and group_by not in GROUP_BY_OPTIONS:
            raise ValueError(
                f'Invalid actual-costs-group-by value: "{group_by}". Supported: {", ".join(GROUP_BY_OPTIONS)}'
            )

        args = ["cost", "actual", "--output", "json"]
        args.extend(self._input_file_args(config))

        start, end = resolve_date_range(config.actual_costs_period, today)
        args.extend(["--from", start, "--to", end])
        if group_by:
            args.extend(["--group-by", group_by])

        output = await self._run(args)
        if output.exit_code != 0:
            logger.warning(f"{self.tool} cost actual failed with exit code {output.exit_code}: {output.stderr}")
            return ActualCostReport.empty(start, end)

        try:
            raw = parse_response(output.stdout, self.tool)
            summary = raw.get("summary") if isinstance(raw.get("summary"), dict) else {}
            currency = str(_first(raw, "currency") or summary.get("currency") or "USD")
            total = raw.get("total")
            if total is None:
                total = summary.get("total")
            if total is None:
                total = raw.get("totalCost", 0)

            items = []
            for item in _first(raw, "items", "resources") or []:
                cost = _first(item, "cost", "total", "monthly")
                items.append(
                    ActualCostItem(
                        name=str(_first(item, "name", "resourceId", "provider") or "Unknown"),
                        cost=float(cost or 0),
                        currency=str(item.get("currency") or currency),
                    )
                )
            return ActualCostReport(
                total=float(total or 0),
                currency=currency,
                start_date=start,
                end_date=end,
                items=items,
            )
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to parse actual cost output: {e}")
            return ActualCostReport.empty(start, end)

    # -------------------------------------------------------------------------
    # Budget health
    # -------------------------------------------------------------------------

    async def _budget_status_body(self) -> Optional[BudgetStatusResponse]:
        output = await self._run(["budget", "status", "--output", "json"])

        if output.exit_code != 0:
            logger.warning(f"{self.tool} budget status failed (exit code {output.exit_code}): {output.stderr}")
            return None
        if not output.stdout.strip():
            logger.warning(f"Empty response from {self.tool} budget status")
            return None
        try:
            return BudgetStatusResponse.model_validate(parse_response(output.stdout, self.tool))
        except ValueError as e:
            logger.warning(f"Failed to parse {self.tool} budget status response: {e}")
            return None

    async def run_budget_status(
        self, config: ActionConfig, capabilities: Capabilities
    ) -> Optional[BudgetHealthReport]:
        """
        Budget health from ``budget status``.

        None means "no health data; show the basic budget view".
        """
        budget = config.budget_configuration()
        if budget is None:
            return None

        if not capabilities.exit_codes:
            logger.warning(f"Budget health features require {self.tool} v0.2.5+")
            return None

        body = await self._budget_status_body()
        if body is None:
            return None

        amount = budget.amount
        currency = budget.currency
        period = budget.period.value
        if body.budget is not None:
            amount = body.budget.amount or amount
            currency = body.budget.currency or currency
            period = body.budget.period or period

        spent = body.spent or 0.0
        percent_used = body.percent_used
        if percent_used is None:
            percent_used = (spent / amount) * 100 if amount > 0 else 0.0
        remaining = body.remaining if body.remaining is not None else amount - spent

        if body.health_score is not None:
            status = compute_health_status(body.health_score, spent, amount)
        else:
            status = parse_health_status(body.status, percent_used)

        return BudgetHealthReport(
            health_score=body.health_score,
            health_status=status,
            spent=spent,
            remaining=remaining,
            percent_used=percent_used,
            forecast_amount=body.forecast,
            forecast=format_money(body.forecast, currency) if body.forecast is not None else None,
            runway_days=body.runway_days,
            budget=BudgetInfo(amount=amount, currency=currency, period=period),
        )

    # -------------------------------------------------------------------------
    # Scoped budgets
    # -------------------------------------------------------------------------

    async def run_scoped_budget_status(
        self, config: ActionConfig, capabilities: Capabilities
    ) -> Optional[ScopedBudgetReport]:
        """
        Per-scope status from ``budget status``.

        Raises:
            RuntimeError: scopes are configured but the tool is older than v0.2.6.
        """
        scopes = config.scopes()
        if not scopes:
            return None

        requires_scoped_budget_version(capabilities.version, self.tool)

        body = await self._budget_status_body()
        if body is None:
            return None

        configured = {s.scope: s.amount for s in scopes}
        return build_scoped_report(body, configured, config.budget_currency)

    # -------------------------------------------------------------------------
    # Local calculations
    # -------------------------------------------------------------------------

    def calculate_budget_status(self, config: ActionConfig, cost_report: CostReport) -> Optional[BudgetStatus]:
        """Budget usage derived from the projected monthly cost."""
        budget = config.budget_configuration()
        if budget is None:
            return None

        spent = cost_report.total_monthly
        percent_used = (spent / budget.amount) * 100
        return BudgetStatus(
            configured=True,
            amount=budget.amount,
            currency=budget.currency,
            period=budget.period.value,
            spent=spent,
            remaining=budget.amount - spent,
            percent_used=percent_used,
            alerts=[
                AlertStatus(threshold=a.threshold, type=a.type.value, triggered=percent_used >= a.threshold)
                for a in budget.alerts
            ],
        )

    def calculate_sustainability_metrics(
        self, cost_report: CostReport, include_equivalents: bool = True
    ) -> SustainabilityReport:
        total_co2e = 0.0
        for resource in cost_report.resources:
            footprint = (resource.get("sustainability") or {}).get("carbon_footprint") or {}
            value = footprint.get("value")
            if value:
                total_co2e += float(value)

        # No base-state footprint is available, so the diff is reported as 0.
        total_co2e_diff = 0.0
        total_cost = cost_report.total_monthly
        carbon_intensity = (total_co2e * 1000) / total_cost if total_cost > 0 else 0.0

        return SustainabilityReport(
            total_co2e=total_co2e,
            total_co2e_diff=total_co2e_diff,
            carbon_intensity=carbon_intensity,
            equivalents=calculate_equivalents(total_co2e) if include_equivalents else None,
        )


def _scope_status(entry: ScopeEntry, configured: Dict[str, float], default_currency: str) -> ScopedBudgetStatus:
    derived_type, derived_key = split_scope(entry.scope)
    try:
        scope_type = ScopeType(entry.type) if entry.type else derived_type
    except ValueError:
        scope_type = derived_type

    budget = entry.budget if entry.budget is not None else configured.get(entry.scope, 0.0)
    spent = entry.spent or 0.0
    percent_used = entry.percent_used
    if percent_used is None:
        percent_used = (spent / budget) * 100 if budget > 0 else 0.0

    return ScopedBudgetStatus(
        scope=entry.scope,
        scope_type=scope_type,
        scope_key=entry.key or derived_key,
        spent=spent,
        budget=budget,
        currency=entry.currency or default_currency,
        percent_used=percent_used,
        status=parse_health_status(entry.status, percent_used),
        alerts=[ScopedBudgetAlert(threshold=a.threshold, type=a.type, triggered=a.triggered) for a in entry.alerts],
    )


def build_scoped_report(
    body: BudgetStatusResponse,
    configured: Optional[Dict[str, float]] = None,
    default_currency: str = "USD",
) -> ScopedBudgetReport:
    """Split tool scope rows into evaluated scopes and failed scopes."""
    configured = configured or {}
    failed: List[ScopedBudgetFailure] = []
    failed_names = set()

    for entry in body.scopes:
        if entry.error:
            failed.append(ScopedBudgetFailure(scope=entry.scope, error=entry.error))
            failed_names.add(entry.scope)
    for err in body.errors:
        if err.scope not in failed_names:
            failed.append(ScopedBudgetFailure(scope=err.scope, error=err.error))
            failed_names.add(err.scope)

    scopes = [
        _scope_status(entry, configured, default_currency)
        for entry in body.scopes
        if entry.scope not in failed_names
    ]

    # Every configured scope ends up in exactly one of scopes/failed
    returned = {s.scope for s in scopes} | failed_names
    for name in configured:
        if name not in returned:
            failed.append(ScopedBudgetFailure(scope=name, error=MISSING_SCOPE_ERROR))

    for f in failed:
        logger.warning(f'Scoped budget "{f.scope}" could not be evaluated: {f.error}')

    return ScopedBudgetReport(scopes=scopes, failed=failed)
