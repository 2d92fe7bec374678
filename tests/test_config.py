"""Tests for ActionConfig loading, alert/period validation and the budget config writer."""
import json
import logging

import pytest
import yaml

from ff_core.budget.config import (
    ActionConfig,
    BudgetConfigWriter,
    parse_alerts,
    validate_period,
)
from ff_core.budget.models import DEFAULT_ALERTS, AlertType, BudgetPeriod


class TestDefaults:
    def test_documented_defaults(self):
        config = ActionConfig()
        assert config.pulumi_plan_json_path == "plan.json"
        assert config.tool_command == "finfocus"
        assert config.behavior_on_error == "fail"
        assert config.threshold is None
        assert config.include_recommendations is True
        assert config.include_actual_costs is False
        assert config.actual_costs_period == "7d"
        assert config.actual_costs_group_by == "provider"
        assert config.budget_currency == "USD"
        assert config.budget_period == "monthly"
        assert config.fail_on_budget_scope_breach is False
        assert config.budget_configuration() is None
        assert config.scopes() == []

    def test_from_empty_dict_matches_defaults(self):
        assert ActionConfig.from_dict({}) == ActionConfig()


class TestFromDict:
    def test_kebab_case_and_coercion(self):
        config = ActionConfig.from_dict({
            "pulumi-plan-json-path": "out/plan.json",
            "budget-amount": "2000",
            "budget-currency": "eur",
            "include-actual-costs": "yes",
            "include-recommendations": "false",
            "fail-on-budget-health": "55",
            "fail-on-budget-scope-breach": "1",
            "threshold": " 100USD ",
        })
        assert config.pulumi_plan_json_path == "out/plan.json"
        assert config.budget_amount == 2000.0
        assert config.budget_currency == "EUR"
        assert config.include_actual_costs is True
        assert config.include_recommendations is False
        assert config.fail_on_budget_health == 55.0
        assert config.fail_on_budget_scope_breach is True
        assert config.threshold == "100USD"

    def test_invalid_behavior_defaults_to_fail(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = ActionConfig.from_dict({"behavior_on_error": "explode"})
        assert config.behavior_on_error == "fail"
        assert "Invalid behavior_on_error" in caplog.text

    def test_invalid_number_ignored(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = ActionConfig.from_dict({"budget_amount": "lots"})
        assert config.budget_amount is None
        assert "Invalid numeric value for budget_amount" in caplog.text

    def test_scopes_mapping_form(self):
        config = ActionConfig.from_dict({"budget_scopes": {"provider/aws": 1000, "tag/env:prod": 500}})
        assert [(s.scope, s.amount) for s in config.scopes()] == [("provider/aws", 1000.0), ("tag/env:prod", 500.0)]

    def test_budget_configuration(self):
        config = ActionConfig.from_dict({
            "budget_amount": 1500,
            "budget_period": "Quarterly",
            "budget_alerts": [{"threshold": 90, "type": "forecasted"}],
        })
        budget = config.budget_configuration()
        assert budget.amount == 1500.0
        assert budget.period == BudgetPeriod.QUARTERLY
        assert len(budget.alerts) == 1
        assert budget.alerts[0].type == AlertType.FORECASTED

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("aws-public, kubecost,,  ", ["aws-public", "kubecost"]),
            (["aws-public", " ", "vantage"], ["aws-public", "vantage"]),
            ("", []),
            (None, []),
        ],
    )
    def test_install_plugins(self, value, expected):
        assert ActionConfig.from_dict({"install-plugins": value}).install_plugins == expected

    def test_utilization_rate(self, caplog):
        assert ActionConfig.from_dict({}).utilization_rate == 1.0
        assert ActionConfig.from_dict({"utilization_rate": "0.75"}).utilization_rate == 0.75
        with caplog.at_level(logging.WARNING):
            assert ActionConfig.from_dict({"utilization_rate": "-2"}).utilization_rate == 1.0
        assert "Invalid utilization_rate" in caplog.text

    def test_analyzer_mode(self):
        config = ActionConfig.from_dict({"analyzer-mode": "true", "log-level": "debug"})
        assert config.analyzer_mode is True
        assert config.log_level == "debug"
        assert ActionConfig().analyzer_mode is False

    def test_zero_budget_not_configured(self):
        assert ActionConfig(budget_amount=0).budget_configuration() is None


class TestLoading:
    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "ffgate.yaml"
        path.write_text(yaml.safe_dump({
            "threshold": "50USD",
            "budget_amount": 1000,
            "budget_scopes": "provider/aws: 600\ntag/team:data: 200\n",
        }))
        config = ActionConfig.from_file(path)
        assert config.threshold == "50USD"
        assert [s.scope for s in config.scopes()] == ["provider/aws", "tag/team:data"]

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "ffgate.json"
        path.write_text(json.dumps({"tool_command": "/opt/bin/finfocus"}))
        assert ActionConfig.from_file(path).tool_command == "/opt/bin/finfocus"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ActionConfig.from_file(tmp_path / "missing.yaml")

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "ffgate.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            ActionConfig.from_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "ffgate.yaml"
        path.write_text("threshold: [100USD\nbudget_amount: {\n")
        with pytest.raises(ValueError, match="Invalid YAML in config file"):
            ActionConfig.from_file(path)

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "ffgate.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            ActionConfig.from_file(path)

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "ffgate.yaml"
        path.write_text("threshold: 50USD\nbudget_amount: 1000\n")
        env = {"FFGATE_THRESHOLD": "75USD", "FFGATE_DEBUG": "true", "OTHER": "x"}

        config = ActionConfig.load(path, environ=env)

        assert config.threshold == "75USD"
        assert config.budget_amount == 1000.0
        assert config.debug is True

    def test_from_env(self):
        config = ActionConfig.from_env({"FFGATE_BUDGET_AMOUNT": "300", "FFGATE_CONFIG_PATH": "x.yaml"})
        assert config.budget_amount == 300.0


class TestAlertsAndPeriod:
    def test_valid_alerts_json(self):
        alerts = parse_alerts('[{"threshold": 50, "type": "actual"}, {"threshold": 120.5, "type": "forecasted"}]')
        assert [(a.threshold, a.type) for a in alerts] == [(50.0, AlertType.ACTUAL), (120.5, AlertType.FORECASTED)]

    def test_invalid_entries_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            alerts = parse_alerts([
                {"threshold": -1, "type": "actual"},
                {"threshold": 80, "type": "predicted"},
                {"threshold": True, "type": "actual"},
                {"threshold": 70, "type": "actual"},
            ])
        assert [(a.threshold, a.type) for a in alerts] == [(70.0, AlertType.ACTUAL)]
        assert "Invalid alert threshold" in caplog.text
        assert "Invalid alert type" in caplog.text

    @pytest.mark.parametrize("value", [None, "", "{bad", '{"threshold": 80}', "[]", '[{"threshold": 0}]'])
    def test_defaults_used(self, value):
        assert parse_alerts(value) == DEFAULT_ALERTS

    def test_period(self, caplog):
        assert validate_period("yearly") == BudgetPeriod.YEARLY
        assert validate_period(None) == BudgetPeriod.MONTHLY
        with caplog.at_level(logging.WARNING):
            assert validate_period("weekly") == BudgetPeriod.MONTHLY
        assert 'Invalid budget period "weekly"' in caplog.text


class TestBudgetConfigWriter:
    def test_writes_tool_config(self, tmp_path):
        config = ActionConfig(
            budget_amount=2000,
            budget_currency="USD",
            budget_period="monthly",
            budget_scopes="provider/aws: 1000\ntag/env:prod: 500",
        )
        path = BudgetConfigWriter(home=tmp_path).write(config)

        assert path == tmp_path / ".finfocus" / "config.yaml"
        data = yaml.safe_load(path.read_text())
        assert data["budget"]["amount"] == 2000.0
        assert data["budget"]["period"] == "monthly"
        assert data["budget"]["alerts"] == [
            {"threshold": 80, "type": "actual"},
            {"threshold": 100, "type": "forecasted"},
        ]
        assert data["budget"]["scopes"] == {
            "provider/aws": {"amount": 1000.0},
            "tag/env:prod": {"amount": 500.0},
        }

    def test_skips_without_budget(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            assert BudgetConfigWriter(home=tmp_path).write(ActionConfig()) is None
        assert not (tmp_path / ".finfocus").exists()
        assert "Budget amount is not configured or invalid" in caplog.text
