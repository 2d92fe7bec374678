"""
Analyzer mode: install the cost tool as a Pulumi policy pack.

Instead of analyzing a saved plan, the tool is registered so that later
``pulumi preview`` runs report costs themselves. Setup writes::

    ~/.finfocus/analyzer/
        PulumiPolicy.yaml                   runtime/name/version
        pulumi-analyzer-policy-finfocus     copy of the tool binary

and exports ``PULUMI_POLICY_PACK`` (plus the ``_PACKS``/``_PACK_PATH``
spellings) pointing at that directory. On GitHub Actions the variables and
the PATH entry are appended to ``$GITHUB_ENV`` / ``$GITHUB_PATH`` so later
steps pick them up.
"""
from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import yaml

from .runner import Runner
from .version import UNKNOWN_VERSION, get_tool_version

logger = logging.getLogger(__name__)

POLICY_PACK_ENV_VARS = ("PULUMI_POLICY_PACK", "PULUMI_POLICY_PACKS", "PULUMI_POLICY_PACK_PATH")
LOG_LEVEL_ENV_VAR = "FINFOCUS_LOG_LEVEL"


@dataclass
class AnalyzerModeSetup:
    policy_pack_dir: Path
    policy_file: Path
    binary_path: Path
    version: str
    env: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "policy_pack_dir": str(self.policy_pack_dir),
            "policy_file": str(self.policy_file),
            "binary_path": str(self.binary_path),
            "version": self.version,
            "env": dict(self.env),
        }


def policy_binary_name(tool_name: str) -> str:
    """Pulumi resolves ``runtime: <name>`` to ``pulumi-analyzer-policy-<name>``."""
    return f"pulumi-analyzer-policy-{tool_name}"


async def setup_analyzer_mode(
    runner: Runner,
    tool: str = "finfocus",
    home: Union[str, Path, None] = None,
    log_level: Optional[str] = None,
    tool_binary: Optional[str] = None,
) -> AnalyzerModeSetup:
    """
    Register the tool as a Pulumi policy pack under ``<home>/.finfocus/analyzer``.

    Raises:
        FileNotFoundError: the tool binary cannot be found on PATH.
    """
    tool_name = Path(tool).name
    version = await get_tool_version(runner, tool)
    if version == UNKNOWN_VERSION:
        logger.warning(f"Could not detect {tool} version; policy pack version set to {UNKNOWN_VERSION}")

    source = tool_binary or shutil.which(tool)
    if not source or not Path(source).is_file():
        raise FileNotFoundError(f"Could not find {tool} binary in PATH")

    pack_dir = (Path(home) if home else Path.home()) / ".finfocus" / "analyzer"
    pack_dir.mkdir(parents=True, exist_ok=True)

    policy_file = pack_dir / "PulumiPolicy.yaml"
    policy_file.write_text(
        yaml.safe_dump({"runtime": tool_name, "name": tool_name, "version": version}, sort_keys=False),
        encoding="utf-8",
    )

    binary_path = pack_dir / policy_binary_name(tool_name)
    shutil.copyfile(source, binary_path)
    binary_path.chmod(0o755)
    logger.info(f"Policy pack installed at {pack_dir}")

    env = {name: str(pack_dir) for name in POLICY_PACK_ENV_VARS}
    if log_level:
        env[LOG_LEVEL_ENV_VAR] = log_level

    return AnalyzerModeSetup(
        policy_pack_dir=pack_dir,
        policy_file=policy_file,
        binary_path=binary_path,
        version=version,
        env=env,
    )


def export_github_environment(setup: AnalyzerModeSetup, environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Append the setup's variables to ``$GITHUB_ENV`` and its directory to ``$GITHUB_PATH``.

    Returns False (and writes nothing) outside GitHub Actions.
    """
    environ = os.environ if environ is None else environ
    env_file = environ.get("GITHUB_ENV")
    path_file = environ.get("GITHUB_PATH")
    if not env_file and not path_file:
        logger.info("Not running on GitHub Actions; set these variables for later pulumi commands:")
        for name, value in setup.env.items():
            logger.info(f"  {name}={value}")
        return False

    if env_file:
        with open(env_file, "a", encoding="utf-8") as f:
            for name, value in setup.env.items():
                f.write(f"{name}={value}\n")
    if path_file:
        with open(path_file, "a", encoding="utf-8") as f:
            f.write(f"{setup.policy_pack_dir}\n")
    return True
