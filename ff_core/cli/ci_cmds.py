"""
ffgate CLI CI Commands

Provides CI/CD integration commands:
- ffgate ci check --config <file> - Run the cost tool, evaluate budgets and guardrails
- ffgate ci status - Show status from the last CI run
- ffgate ci init - Write a default ffgate.yaml and GitHub workflow
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = """# ffgate configuration
# Every key can be overridden with an FFGATE_<KEY> environment variable.

pulumi_plan_json_path: plan.json
tool_command: finfocus
behavior_on_error: fail  # fail | warn | silent

# Fail when the projected monthly cost increases by more than this amount
# threshold: 100USD
# utilization_rate: 1.0

# Plugins installed with "finfocus plugin install" before the analysis
# install_plugins: aws-public, kubecost

# Register finfocus as a Pulumi policy pack instead of analyzing plan.json
analyzer_mode: false
# log_level: info

include_recommendations: true
include_actual_costs: false
actual_costs_period: 7d  # Nd | mtd | YYYY-MM-DD
actual_costs_group_by: provider

include_sustainability: true
# fail_on_carbon_increase: 10kg  # or 10%

# budget_amount: 2000
# budget_currency: USD
# budget_period: monthly
# budget_alerts: '[{"threshold": 80, "type": "actual"}, {"threshold": 100, "type": "forecasted"}]'
# fail_on_budget_health: 50

# budget_scopes: |
#   provider/aws: 1000
#   tag/env:prod: 500
# fail_on_budget_scope_breach: true
"""

WORKFLOW = """# ffgate CI Workflow
# Evaluates projected infrastructure cost against budgets on pull requests

name: Cost Check

on:
  pull_request:
    branches: [ main ]

jobs:
  cost-check:
    runs-on: ubuntu-latest

    steps:
      - uses: actions/checkout@v4

      - name: Set up Python
        uses: actions/setup-python@v5
        with:
          python-version: '3.11'

      - name: Install ffgate
        run: |
          python -m pip install --upgrade pip
          pip install ffgate

      - name: Generate Pulumi plan
        run: pulumi preview --json > plan.json

      - name: Run ffgate
        run: ffgate ci check --config ffgate.yaml --out ci_reports/

      - name: Upload CI Reports
        uses: actions/upload-artifact@v4
        if: always()
        with:
          name: cost-reports
          path: ci_reports/
"""


@click.group()
def ci():
    """CI/CD integration commands."""
    pass


def _handle_error(error: Exception, behavior: str) -> None:
    """Apply behavior_on_error to a fatal pipeline error."""
    if behavior == "warn":
        logger.warning(str(error))
        click.echo(f"WARNING: {error}", err=True)
        return
    if behavior == "silent":
        logger.info(f"Silent error (not failing): {error}")
        return
    click.echo(f"ERROR: {error}", err=True)
    sys.exit(1)


@ci.command("check")
@click.option("--config", "-c", "config_path", default=None, help="Config file (YAML/JSON)")
@click.option("--out", "-o", default="ci_reports", help="Output directory for reports")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def ci_check(ctx: click.Context, config_path: Optional[str], out: str, verbose: bool):
    """
    Run the cost CI check.

    This command:
    1. Detects the cost tool version
    2. Runs projected cost, recommendations, actual costs and budget status
    3. Evaluates guardrails (cost, carbon, budget health, scoped budgets)
    4. Generates reports (JSON + Markdown)
    5. Exits with non-zero code if any enforced check fails

    Example:
        ffgate ci check --config ffgate.yaml --out ci_reports/
    """
    from ..budget.config import ActionConfig
    from ..ci.runner import CIRunner
    from ..services.config_service import default_config_path

    runner_factory = (ctx.obj or {}).get("runner_factory")

    if config_path is None and default_config_path().exists():
        config_path = str(default_config_path())

    try:
        config = ActionConfig.load(config_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)

    if verbose or config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    click.echo("=" * 60)
    click.echo("ffgate CI Check")
    click.echo("=" * 60)
    click.echo(f"Plan: {config.pulumi_plan_json_path}")
    click.echo(f"Config: {config_path or 'environment/defaults'}")
    click.echo(f"Timestamp: {datetime.now(timezone.utc).isoformat()}")
    click.echo("")

    runner = CIRunner(
        config,
        runner=runner_factory() if runner_factory else None,
        output_dir=out,
    )

    try:
        report = asyncio.run(runner.run())
    except (FileNotFoundError, ValueError, RuntimeError, OSError) as e:
        _handle_error(e, config.behavior_on_error)
        return

    paths = runner.write(report)

    if report.plugins_installed:
        click.echo(f"Plugins installed: {', '.join(report.plugins_installed)}")
    if report.analyzer_mode is not None:
        click.echo(f"Analyzer mode configured: {report.analyzer_mode.policy_pack_dir}")
        for name, value in report.analyzer_mode.env.items():
            click.echo(f"  {name}={value}")
        click.echo('Run "pulumi preview" to see cost estimates.')

    if report.cost is not None:
        click.echo(f"Projected monthly cost: {report.cost.total_monthly:.2f} {report.cost.currency}")
        if report.cost.has_diff:
            click.echo(f"Cost change: {report.cost.monthly_cost_change:.2f} {report.cost.currency}")
    if report.recommendations is not None:
        click.echo(f"Achievable savings: {report.achievable_savings:.2f}")

    click.echo("")
    for check in report.checks:
        status = "PASS" if check.result.passed else "FAIL"
        suffix = "" if check.enforced else " (not enforced)"
        click.echo(f"  {status} {check.name}{suffix}: {check.result.message}")

    click.echo("")
    click.echo(f"CI Report (JSON): {paths['json']}")
    click.echo(f"CI Report (MD): {paths['markdown']}")

    click.echo("")
    click.echo("=" * 60)
    if report.passed:
        click.echo("CI CHECK: PASSED")
    else:
        click.echo("CI CHECK: FAILED", err=True)
        for check in report.failed_checks:
            click.echo(f"  - {check.name}: {check.result.message}", err=True)
    click.echo("=" * 60)

    if not report.passed:
        sys.exit(1)


@ci.command("status")
@click.option("--reports", "-r", default="ci_reports", help="Reports directory")
def ci_status(reports: str):
    """
    Show status from most recent CI run.

    Example:
        ffgate ci status --reports ci_reports/
    """
    report_path = Path(reports) / "ci_report.json"

    if not report_path.exists():
        click.echo("No CI reports found.", err=True)
        click.echo("Run 'ffgate ci check' first to generate reports.")
        sys.exit(1)

    results = json.loads(report_path.read_text())

    click.echo("")
    click.echo("Last CI Run")
    click.echo("-" * 40)
    click.echo(f"Timestamp: {results.get('timestamp', 'unknown')}")
    capabilities = results.get("capabilities") or {}
    click.echo(f"finfocus: {capabilities.get('version', 'unknown')}")

    cost = results.get("cost") or {}
    if cost:
        click.echo(f"Projected monthly cost: {cost.get('total_monthly')} {cost.get('currency')}")
    click.echo("")

    if results.get("passed"):
        click.echo("Status: PASSED")
    else:
        click.echo("Status: FAILED", err=True)

    checks = results.get("checks", [])
    if checks:
        click.echo("")
        click.echo("Checks:")
        for check in checks:
            status = "PASS" if check.get("passed") else "FAIL"
            click.echo(f"  - {check.get('name')}: {status} ({check.get('severity')}) {check.get('message')}")


@ci.command("init")
@click.option("--out", "-o", default=".", help="Output directory")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing files")
def ci_init(out: str, force: bool):
    """
    Initialize CI configuration files.

    Creates:
    - ffgate.yaml
    - .github/workflows/ffgate.yml

    Example:
        ffgate ci init --out .
    """
    out_path = Path(out)
    (out_path / ".github" / "workflows").mkdir(parents=True, exist_ok=True)

    files = {
        out_path / "ffgate.yaml": DEFAULT_CONFIG,
        out_path / ".github" / "workflows" / "ffgate.yml": WORKFLOW,
    }
    for path, content in files.items():
        if path.exists() and not force:
            click.echo(f"Skipped (exists): {path}")
            continue
        path.write_text(content)
        click.echo(f"Created: {path}")

    click.echo("")
    click.echo("CI configuration initialized!")
    click.echo("")
    click.echo("Next steps:")
    click.echo("  1. Set budget_amount and thresholds in ffgate.yaml")
    click.echo("  2. Run: ffgate ci check")
    click.echo("  3. Commit and push to trigger GitHub Actions")


def register_ci_commands(cli_group):
    """Register CI commands with the main CLI group."""
    cli_group.add_command(ci)
