"""
ffgate CLI - Command-line interface for cost budget checks in CI.

Commands:
- ffgate version - Show ffgate and cost tool versions
- ffgate scopes <text-or-file> - Parse scoped budget declarations

CI Commands:
- ffgate ci check - Run cost analysis and enforce budget guardrails
- ffgate ci status - Show status from last CI run
- ffgate ci init - Initialize CI configuration
"""

from .main import cli, main

__all__ = ["cli", "main"]
