"""ffgate CI runner."""

from .runner import CheckResult, CIReport, CIRunner

__all__ = ["CheckResult", "CIReport", "CIRunner"]
