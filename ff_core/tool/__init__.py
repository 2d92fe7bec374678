"""
ffgate Tool - cost tool process runner, version gate and adapter.
"""

from .runner import ExecOutput, ProcessRunner
from .version import Capabilities, get_tool_version, resolve_capabilities
from .analyzer import Analyzer
from .policy_pack import AnalyzerModeSetup, setup_analyzer_mode

__all__ = [
    "ExecOutput",
    "ProcessRunner",
    "Capabilities",
    "get_tool_version",
    "resolve_capabilities",
    "Analyzer",
    "AnalyzerModeSetup",
    "setup_analyzer_mode",
]
