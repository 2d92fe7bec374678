"""
ffgate CLI Main Entry Point

Usage:
    ffgate version [--tool finfocus]
    ffgate scopes <text-or-file>
    ffgate ci check [--config ffgate.yaml] [--out ci_reports]
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click

from .. import __version__
from .ci_cmds import register_ci_commands


@click.group()
@click.version_option(version=__version__, prog_name="ffgate")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """ffgate - Budget guardrails for infrastructure cost in CI."""
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


register_ci_commands(cli)


@cli.command("version")
@click.option("--tool", default="finfocus", help="Cost tool command")
@click.pass_context
def version(ctx: click.Context, tool: str):
    """Show ffgate and cost tool versions."""
    from ..tool.runner import ProcessRunner
    from ..tool.version import Capabilities, get_tool_version

    factory = ctx.obj.get("runner_factory") if ctx.obj else None
    runner = factory() if factory else ProcessRunner(timeout=30)

    tool_version = asyncio.run(get_tool_version(runner, tool))
    capabilities = Capabilities.for_version(tool_version)

    click.echo(f"ffgate v{__version__}")
    if capabilities.unknown:
        click.echo(f"{tool}: not detected")
        return
    click.echo(f"{tool}: v{tool_version}")
    click.echo(f"  exit codes: {'yes' if capabilities.exit_codes else 'no'}")
    click.echo(f"  scoped budgets: {'yes' if capabilities.scoped_budgets else 'no'}")


@cli.command("scopes")
@click.argument("source")
def scopes(source: str):
    """
    Parse scoped budget declarations and print them as JSON.

    SOURCE is a file path or the declaration text itself.

    Example:
        ffgate scopes "provider/aws: 1000"
    """
    from ..budget.scopes import parse_budget_scopes

    path = Path(source)
    text = path.read_text(encoding="utf-8") if path.is_file() else source

    parsed = parse_budget_scopes(text)
    click.echo(json.dumps(
        [
            {
                "scope": s.scope,
                "scope_type": s.scope_type.value,
                "scope_key": s.scope_key,
                "amount": s.amount,
            }
            for s in parsed
        ],
        indent=2,
    ))


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
