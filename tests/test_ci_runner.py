"""
Tests for the CI Runner.

Covers:
- Report pass/fail from enforced checks
- Full pipeline against a scripted cost tool
- Report files written
- Plugin installation, utilization rate and analyzer mode
"""
import json

import pytest

from ff_core.budget.config import ActionConfig
from ff_core.budget.models import BudgetThresholdResult, Recommendation, RecommendationsReport, Severity


def _fail(message="boom"):
    return BudgetThresholdResult(passed=False, severity=Severity.EXCEEDED, message=message)


class TestCIReport:
    """Unit tests for the CIReport dataclass."""

    def test_all_pass(self):
        from ff_core.ci.runner import CheckResult, CIReport

        report = CIReport(
            timestamp="2025-01-01T00:00:00Z",
            checks=[
                CheckResult(name="cost_threshold", result=BudgetThresholdResult.ok("ok")),
                CheckResult(name="budget_health", result=BudgetThresholdResult.ok("ok")),
            ],
        )
        assert report.passed is True
        assert report.failed_checks == []

    def test_enforced_failure(self):
        from ff_core.ci.runner import CheckResult, CIReport

        report = CIReport(
            timestamp="2025-01-01T00:00:00Z",
            checks=[CheckResult(name="cost_threshold", result=_fail())],
        )
        assert report.passed is False
        assert [c.name for c in report.failed_checks] == ["cost_threshold"]

    def test_unenforced_failure_passes(self):
        from ff_core.ci.runner import CheckResult, CIReport

        report = CIReport(
            timestamp="2025-01-01T00:00:00Z",
            checks=[CheckResult(name="scoped_budget_breach", result=_fail(), enforced=False)],
        )
        assert report.passed is True

    def test_empty_report_passes(self):
        from ff_core.ci.runner import CIReport

        assert CIReport(timestamp="now").passed is True

    def test_to_dict(self):
        from ff_core.ci.runner import CheckResult, CIReport

        report = CIReport(
            timestamp="2025-01-01T00:00:00Z",
            checks=[CheckResult(name="cost_threshold", result=_fail("too much"))],
        )
        d = report.to_dict()
        assert d["passed"] is False
        assert d["cost"] is None
        assert d["checks"][0] == {
            "name": "cost_threshold",
            "enforced": True,
            "passed": False,
            "severity": "exceeded",
            "message": "too much",
            "exit_code": None,
        }
        json.loads(report.to_json())

    def test_markdown_savings_disclaimer(self):
        from ff_core.ci.runner import CIReport

        recs = RecommendationsReport(recommendations=[
            Recommendation(resource_id="ec2", action_type="RIGHTSIZING", estimated_savings=50),
            Recommendation(resource_id="ec2", action_type="RIGHTSIZING", estimated_savings=80),
        ])
        report = CIReport(
            timestamp="now",
            recommendations=recs,
            achievable_savings=80.0,
            total_possible_savings=130.0,
        )
        md = report.to_markdown()
        assert "**Achievable savings:** $80.00/month" in md
        assert "Up to $130.00/month" in md


BUDGET_STATUS = {
    "finfocus": {
        "health_score": 40,
        "spent": 900.0,
        "percent_used": 90.0,
        "forecast": 1100.0,
        "budget": {"amount": 1000.0, "currency": "USD", "period": "monthly"},
        "scopes": [
            {"scope": "provider/aws", "spent": 700.0, "budget": 600.0, "percent_used": 116.7, "status": "exceeded"},
            {"scope": "tag/env:prod", "spent": 50.0, "budget": 200.0, "percent_used": 25.0, "status": "healthy"},
        ],
    }
}


@pytest.fixture
def scripted_tool(fake_runner, projected_report):
    fake_runner.version("0.2.6")
    # Serves both the JSON analysis and the exit-code threshold run
    fake_runner.on("cost", "projected", stdout=projected_report)
    fake_runner.on("cost", "recommendations", stdout={
        "summary": {"total_count": 3, "total_savings": 150, "currency": "USD", "count_by_action_type": {}},
        "recommendations": [
            {"resource_id": "ec2", "action_type": "RIGHTSIZING", "estimated_savings": 50},
            {"resource_id": "ec2", "action_type": "RIGHTSIZING", "estimated_savings": 80},
            {"resource_id": "ebs", "action_type": "DELETE", "estimated_savings": 20},
        ],
    })
    fake_runner.on("budget", "status", stdout=BUDGET_STATUS)
    return fake_runner


class TestCIRunner:
    @pytest.mark.asyncio
    async def test_full_pipeline(self, scripted_tool, plan_file, tmp_path):
        from ff_core.ci.runner import CIRunner

        config = ActionConfig(
            pulumi_plan_json_path=str(plan_file),
            threshold="100USD",
            budget_amount=1000,
            fail_on_budget_health=50,
            budget_scopes="provider/aws: 600\ntag/env:prod: 200",
            fail_on_budget_scope_breach=True,
        )
        runner = CIRunner(config, runner=scripted_tool, output_dir=str(tmp_path / "reports"), home=str(tmp_path))

        report = await runner.run()

        assert report.capabilities.version == "0.2.6"
        assert report.cost.total_monthly == 250.0
        assert report.achievable_savings == 100.0
        assert report.total_possible_savings == 150.0
        assert report.budget_status.percent_used == 25.0
        assert report.budget_health.health_score == 40
        assert [s.scope for s in report.scoped_budgets.scopes] == ["provider/aws", "tag/env:prod"]
        assert report.sustainability.total_co2e == 15.0

        checks = {c.name: c for c in report.checks}
        assert checks["cost_threshold"].result.passed is True
        assert checks["cost_threshold"].result.exit_code == 0
        assert checks["budget_health"].result.passed is False
        assert checks["scoped_budget_breach"].result.message == "Budget exceeded for scopes: provider/aws"
        assert report.passed is False

        assert (tmp_path / ".finfocus" / "config.yaml").exists()

    @pytest.mark.asyncio
    async def test_minimal_pipeline_passes(self, scripted_tool, plan_file, tmp_path):
        from ff_core.ci.runner import CIRunner

        config = ActionConfig(pulumi_plan_json_path=str(plan_file), include_recommendations=False)
        report = await CIRunner(config, runner=scripted_tool, home=str(tmp_path)).run()

        assert report.passed is True
        assert report.checks == []
        assert report.recommendations is None
        assert report.budget_health is None
        assert report.scoped_budgets is None
        assert scripted_tool.args_for("budget", "status") == []

    @pytest.mark.asyncio
    async def test_scoped_budgets_on_old_tool_fatal(self, fake_runner, projected_report, plan_file, tmp_path):
        from ff_core.ci.runner import CIRunner

        fake_runner.version("0.2.5")
        fake_runner.on("cost", "projected", stdout=projected_report)
        config = ActionConfig(
            pulumi_plan_json_path=str(plan_file),
            include_recommendations=False,
            budget_scopes="provider/aws: 600",
        )
        with pytest.raises(RuntimeError, match="Scoped budgets require finfocus v0.2.6"):
            await CIRunner(config, runner=fake_runner, home=str(tmp_path)).run()

    @pytest.mark.asyncio
    async def test_write_reports(self, scripted_tool, plan_file, tmp_path):
        from ff_core.ci.runner import CIRunner

        config = ActionConfig(pulumi_plan_json_path=str(plan_file), threshold="10USD")
        runner = CIRunner(config, runner=scripted_tool, output_dir=str(tmp_path / "out"), home=str(tmp_path))
        report = await runner.run()
        paths = runner.write(report)

        data = json.loads(paths["json"].read_text())
        assert data["cost"]["total_monthly"] == 250.0
        assert data["checks"][0]["name"] == "cost_threshold"
        assert "# Cost Report" in paths["markdown"].read_text()

    @pytest.mark.asyncio
    async def test_plugins_and_utilization(self, scripted_tool, plan_file, tmp_path):
        from ff_core.ci.runner import CIRunner

        scripted_tool.on("plugin", "install")
        config = ActionConfig(
            pulumi_plan_json_path=str(plan_file),
            include_recommendations=False,
            install_plugins=["aws-public", "kubecost"],
            utilization_rate=0.8,
        )
        report = await CIRunner(config, runner=scripted_tool, home=str(tmp_path)).run()

        assert report.plugins_installed == ["aws-public", "kubecost"]
        plugin_calls = [i for i, (_, args) in enumerate(scripted_tool.calls) if args[:2] == ["plugin", "install"]]
        projected_call = next(
            i for i, (_, args) in enumerate(scripted_tool.calls) if args[:2] == ["cost", "projected"]
        )
        assert max(plugin_calls) < projected_call
        assert scripted_tool.args_for("cost", "projected")[0][-2:] == ["--utilization", "0.8"]
        assert report.to_dict()["plugins_installed"] == ["aws-public", "kubecost"]

    @pytest.mark.asyncio
    async def test_plugin_failure_is_fatal(self, scripted_tool, plan_file, tmp_path):
        from ff_core.ci.runner import CIRunner

        scripted_tool.on("plugin", "install", exit_code=1, stderr="not found")
        config = ActionConfig(pulumi_plan_json_path=str(plan_file), install_plugins=["bogus"])

        with pytest.raises(RuntimeError, match="Failed to install plugin bogus"):
            await CIRunner(config, runner=scripted_tool, home=str(tmp_path)).run()
        assert scripted_tool.args_for("cost", "projected") == []

    @pytest.mark.asyncio
    async def test_analyzer_mode_skips_analysis(self, scripted_tool, tmp_path):
        from ff_core.ci.runner import CIRunner

        binary = tmp_path / "finfocus"
        binary.write_text("#!/bin/sh\n")
        binary.chmod(0o755)
        env_file = tmp_path / "github_env"
        config = ActionConfig(
            tool_command=str(binary),
            pulumi_plan_json_path=str(tmp_path / "no-plan.json"),
            analyzer_mode=True,
            threshold="10USD",
        )
        runner = CIRunner(
            config, runner=scripted_tool, output_dir=str(tmp_path / "out"),
            home=str(tmp_path / "home"), environ={"GITHUB_ENV": str(env_file)},
        )

        report = await runner.run()

        assert report.analyzer_mode.policy_pack_dir == tmp_path / "home" / ".finfocus" / "analyzer"
        assert report.cost is None
        assert report.checks == []
        assert report.passed is True
        assert scripted_tool.args_for("cost") == []
        assert "PULUMI_POLICY_PACK=" in env_file.read_text()
        assert "## Analyzer Mode" in report.to_markdown()
        assert json.loads(report.to_json())["analyzer_mode"]["version"] == "0.2.6"
