"""
ffgate CI Runner: run the cost tool on a plan, evaluate budgets and guardrails.

Used by ``ffgate ci check``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .. import __version__
from ..budget.config import ActionConfig, BudgetConfigWriter
from ..budget.guardrails import (
    check_budget_health_threshold,
    check_budget_threshold,
    check_scoped_budget_breach,
    evaluate_carbon_threshold,
)
from ..budget.health import format_money
from ..budget.models import (
    ActualCostReport,
    BudgetHealthReport,
    BudgetStatus,
    BudgetThresholdResult,
    CostReport,
    RecommendationsReport,
    ScopedBudgetReport,
    SustainabilityReport,
)
from ..budget.savings import calculate_achievable_savings, calculate_total_possible_savings
from ..tool.analyzer import Analyzer
from ..tool.policy_pack import AnalyzerModeSetup, export_github_environment, setup_analyzer_mode
from ..tool.runner import ProcessRunner, Runner
from ..tool.version import Capabilities, resolve_capabilities

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    name: str
    result: BudgetThresholdResult
    enforced: bool = True

    @property
    def failed(self) -> bool:
        return self.enforced and not self.result.passed


@dataclass
class CIReport:
    timestamp: str
    version: str = __version__
    capabilities: Optional[Capabilities] = None
    plugins_installed: List[str] = field(default_factory=list)
    analyzer_mode: Optional[AnalyzerModeSetup] = None
    cost: Optional[CostReport] = None
    actual_costs: Optional[ActualCostReport] = None
    recommendations: Optional[RecommendationsReport] = None
    achievable_savings: float = 0.0
    total_possible_savings: float = 0.0
    budget_status: Optional[BudgetStatus] = None
    budget_health: Optional[BudgetHealthReport] = None
    scoped_budgets: Optional[ScopedBudgetReport] = None
    sustainability: Optional[SustainabilityReport] = None
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not any(c.failed for c in self.checks)

    @property
    def failed_checks(self) -> List[CheckResult]:
        return [c for c in self.checks if c.failed]

    def to_dict(self) -> Dict[str, Any]:
        def _dump(value):
            return value.to_dict() if value is not None else None

        return {
            "timestamp": self.timestamp,
            "version": self.version,
            "passed": self.passed,
            "capabilities": _dump(self.capabilities),
            "plugins_installed": list(self.plugins_installed),
            "analyzer_mode": _dump(self.analyzer_mode),
            "cost": _dump(self.cost),
            "actual_costs": _dump(self.actual_costs),
            "recommendations": _dump(self.recommendations),
            "achievable_savings": self.achievable_savings,
            "total_possible_savings": self.total_possible_savings,
            "budget_status": _dump(self.budget_status),
            "budget_health": _dump(self.budget_health),
            "scoped_budgets": _dump(self.scoped_budgets),
            "sustainability": _dump(self.sustainability),
            "checks": [
                {"name": c.name, "enforced": c.enforced, **c.result.to_dict()}
                for c in self.checks
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

    def to_markdown(self) -> str:
        lines = []

        lines.append("# Cost Report")
        lines.append("")
        lines.append(f"**Timestamp:** {self.timestamp}")
        if self.capabilities is not None:
            lines.append(f"**finfocus:** {self.capabilities.version}")
        lines.append("")

        lines.append(f"## Status: {'PASSED' if self.passed else 'FAILED'}")
        lines.append("")

        if self.plugins_installed:
            lines.append(f"**Plugins installed:** {', '.join(self.plugins_installed)}")
            lines.append("")

        if self.analyzer_mode is not None:
            lines.append("## Analyzer Mode")
            lines.append("")
            lines.append(f"Policy pack installed at `{self.analyzer_mode.policy_pack_dir}`. "
                         f"Run `pulumi preview` to see cost estimates.")
            lines.append("")

        if self.cost is not None:
            lines.append("## Projected Cost")
            lines.append("")
            lines.append("| Metric | Value |")
            lines.append("|--------|-------|")
            lines.append(f"| Monthly | {format_money(self.cost.total_monthly, self.cost.currency)} |")
            if self.cost.has_diff:
                lines.append(f"| Change | {format_money(self.cost.monthly_cost_change, self.cost.currency)} |")
            lines.append("")

        if self.actual_costs is not None:
            ac = self.actual_costs
            lines.append(f"## Actual Costs ({ac.start_date} to {ac.end_date})")
            lines.append("")
            lines.append(f"**Total:** {format_money(ac.total, ac.currency)}")
            for item in sorted(ac.items, key=lambda i: i.cost, reverse=True):
                lines.append(f"- {item.name}: {format_money(item.cost, item.currency)}")
            lines.append("")

        if self.recommendations is not None and self.recommendations.recommendations:
            currency = self.recommendations.summary.currency
            lines.append("## Savings")
            lines.append("")
            lines.append(f"**Achievable savings:** {format_money(self.achievable_savings, currency)}/month")
            if self.total_possible_savings > self.achievable_savings:
                lines.append(
                    f"_Up to {format_money(self.total_possible_savings, currency)}/month if every option "
                    f"could be combined; alternatives for the same resource are counted once._"
                )
            lines.append("")

        if self.budget_health is not None:
            bh = self.budget_health
            lines.append("## Budget Health")
            lines.append("")
            lines.append("| Metric | Value |")
            lines.append("|--------|-------|")
            if bh.health_score is not None:
                lines.append(f"| Health Score | {bh.health_score:g} |")
            lines.append(f"| Status | {bh.health_status.value} |")
            lines.append(f"| Spent | {format_money(bh.spent, bh.budget.currency)} of {format_money(bh.budget.amount, bh.budget.currency)} ({bh.percent_used:.1f}%) |")
            if bh.forecast:
                lines.append(f"| Forecast | {bh.forecast} |")
            if bh.runway_days is not None:
                lines.append(f"| Runway | {bh.runway_days:g} days |")
            lines.append("")
        elif self.budget_status is not None:
            bs = self.budget_status
            lines.append("## Budget")
            lines.append("")
            lines.append(
                f"{format_money(bs.spent, bs.currency)} of {format_money(bs.amount, bs.currency)} "
                f"{bs.period} ({bs.percent_used:.1f}%)"
            )
            lines.append("")

        if self.scoped_budgets is not None:
            lines.append("## Scoped Budgets")
            lines.append("")
            lines.append("| Scope | Spent | Budget | Used | Status |")
            lines.append("|-------|-------|--------|------|--------|")
            for s in sorted(self.scoped_budgets.scopes, key=lambda s: s.percent_used, reverse=True):
                lines.append(
                    f"| {s.scope} | {format_money(s.spent, s.currency)} | {format_money(s.budget, s.currency)} "
                    f"| {s.percent_used:.1f}% | {s.status.value} |"
                )
            for f in self.scoped_budgets.failed:
                lines.append(f"| {f.scope} | - | - | - | error: {f.error} |")
            lines.append("")

        if self.sustainability is not None:
            sr = self.sustainability
            lines.append("## Sustainability")
            lines.append("")
            lines.append(f"- **Carbon footprint:** {sr.total_co2e:.2f} kgCO2e/month")
            lines.append(f"- **Carbon intensity:** {sr.carbon_intensity:.2f} gCO2e per currency unit")
            if sr.equivalents is not None:
                lines.append(f"- Equivalent to {sr.equivalents.trees:.1f} trees/year, {sr.equivalents.miles_driven:.0f} miles driven")
            lines.append("")

        if self.checks:
            lines.append("## Checks")
            lines.append("")
            for c in self.checks:
                status = "PASS" if c.result.passed else "FAIL"
                suffix = "" if c.enforced else " (not enforced)"
                lines.append(f"- **{c.name}**: {status} ({c.result.severity.value}){suffix} {c.result.message}")
            lines.append("")

        return "\n".join(lines)


class CIRunner:
    """
    Run the cost tool for one plan, evaluate budgets and guardrails,
    and return a structured report.
    """

    def __init__(
        self,
        config: ActionConfig,
        runner: Optional[Runner] = None,
        output_dir: str = "reports",
        home: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.environ = environ
        self.runner = runner or ProcessRunner()
        self.output_dir = Path(output_dir)
        self.home = home
        self.analyzer = Analyzer(self.runner, tool=config.tool_command, debug=config.debug)

    async def run(self) -> CIReport:
        """Execute the full pipeline and return a CIReport."""
        config = self.config
        analyzer = self.analyzer

        report = CIReport(timestamp=datetime.now(timezone.utc).isoformat())

        capabilities = await resolve_capabilities(self.runner, config.tool_command)
        report.capabilities = capabilities
        logger.info(f"{config.tool_command} version: {capabilities.version}")

        if config.install_plugins:
            report.plugins_installed = await analyzer.install_plugins(config.install_plugins)

        if config.analyzer_mode:
            setup = await setup_analyzer_mode(
                self.runner, config.tool_command, home=self.home, log_level=config.log_level
            )
            export_github_environment(setup, self.environ)
            report.analyzer_mode = setup
            logger.info("Analyzer mode configured. Run \"pulumi preview\" to see cost estimates.")
            return report

        if config.budget_amount is not None:
            BudgetConfigWriter(self.home).write(config)

        # 1. Projected cost
        cost = await analyzer.run_analysis(config.pulumi_plan_json_path, config.utilization_rate)
        report.cost = cost
        logger.info(f"Projected monthly cost: {cost.total_monthly} {cost.currency}")
        if cost.has_diff:
            logger.info(f"Cost change: {cost.monthly_cost_change} {cost.currency}")

        # 2. Optional reports
        if config.include_recommendations:
            recs = await analyzer.run_recommendations(config.pulumi_plan_json_path)
            report.recommendations = recs
            report.achievable_savings = calculate_achievable_savings(recs.recommendations)
            report.total_possible_savings = calculate_total_possible_savings(recs.recommendations)

        if config.include_actual_costs:
            report.actual_costs = await analyzer.run_actual_costs(config)

        if config.include_sustainability:
            report.sustainability = analyzer.calculate_sustainability_metrics(
                cost, include_equivalents=config.sustainability_equivalents
            )

        report.budget_status = analyzer.calculate_budget_status(config, cost)
        report.budget_health = await analyzer.run_budget_status(config, capabilities)
        report.scoped_budgets = await analyzer.run_scoped_budget_status(config, capabilities)

        # 3. Guardrails
        if config.threshold:
            report.checks.append(CheckResult(
                name="cost_threshold",
                result=await check_budget_threshold(analyzer, config, cost, capabilities),
            ))

        if config.fail_on_carbon_increase:
            report.checks.append(CheckResult(
                name="carbon_threshold",
                result=evaluate_carbon_threshold(config.fail_on_carbon_increase, report.sustainability),
            ))

        if config.fail_on_budget_health:
            report.checks.append(CheckResult(
                name="budget_health",
                result=check_budget_health_threshold(config.fail_on_budget_health, report.budget_health),
            ))

        if config.budget_scopes.strip():
            report.checks.append(CheckResult(
                name="scoped_budget_breach",
                result=check_scoped_budget_breach(report.scoped_budgets, config.fail_on_budget_scope_breach),
                enforced=config.fail_on_budget_scope_breach,
            ))

        for check in report.checks:
            log = logger.info if check.result.passed else logger.warning
            log(f"{check.name}: {check.result.message}")

        return report

    def write(self, report: CIReport) -> Dict[str, Path]:
        """Write ci_report.json and ci_report.md to the output directory."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        json_path = self.output_dir / "ci_report.json"
        md_path = self.output_dir / "ci_report.md"
        json_path.write_text(report.to_json())
        md_path.write_text(report.to_markdown())
        return {"json": json_path, "markdown": md_path}
