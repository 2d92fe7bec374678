"""Shared fixtures: a scripted cost tool runner and sample plan files."""
import json
from typing import Dict, List, Tuple, Union

import pytest

from ff_core.services.config_service import clear_config_cache
from ff_core.tool.runner import ExecOutput


class FakeRunner:
    """
    Returns scripted ExecOutputs keyed by leading arguments and records calls.

    ``on("cost", "actual", stdout=...)`` answers any call whose args start with
    ``cost actual``; the longest matching prefix wins. Unscripted calls raise
    FileNotFoundError, like a missing executable.
    """

    def __init__(self):
        self.responses: Dict[Tuple[str, ...], Union[ExecOutput, Exception]] = {}
        self.calls: List[Tuple[str, List[str]]] = []

    def on(self, *prefix: str, exit_code: int = 0, stdout: Union[str, dict] = "", stderr: str = ""):
        if isinstance(stdout, dict):
            stdout = json.dumps(stdout)
        self.responses[prefix] = ExecOutput(exit_code=exit_code, stdout=stdout, stderr=stderr)
        return self

    def raise_on(self, *prefix: str, error: Exception):
        self.responses[prefix] = error
        return self

    def version(self, version: str):
        return self.on("--version", stdout=f"finfocus version v{version}\n")

    def args_for(self, *prefix: str) -> List[List[str]]:
        return [args for _, args in self.calls if tuple(args[:len(prefix)]) == prefix]

    async def run(self, command, args, silent=True, ignore_return_code=True):
        self.calls.append((command, list(args)))
        best = None
        for prefix in self.responses:
            if tuple(args[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            raise FileNotFoundError(f"No scripted response for: {command} {' '.join(args)}")
        value = self.responses[best]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture(autouse=True)
def _clear_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def plan_file(tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({"steps": [{"op": "create", "urn": "urn:pulumi:dev::app::aws:ec2/instance:Instance::web"}]}))
    return path


@pytest.fixture
def projected_report():
    return {
        "summary": {"totalMonthly": 250.0, "totalHourly": 0.34, "currency": "USD"},
        "resources": [
            {
                "resourceType": "aws:ec2/instance:Instance",
                "resourceId": "web",
                "monthly": 200.0,
                "currency": "USD",
                "sustainability": {"carbon_footprint": {"value": 12.5, "unit": "kgCO2e"}},
            },
            {
                "resourceType": "aws:ebs/volume:Volume",
                "resourceId": "data",
                "monthly": 50.0,
                "currency": "USD",
                "sustainability": {"carbon_footprint": {"value": 2.5, "unit": "kgCO2e"}},
            },
        ],
        "diff": {"monthly_cost_change": 40.0, "percent_change": 19.0},
    }
