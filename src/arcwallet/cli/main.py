"""
Main CLI entry point for arcwallet.

Commands:
- simulate: run a YAML scenario against an in-memory ledger
- config: show the effective configuration
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import click
from rich import box
from rich.console import Console
from rich.table import Table

from ..core import config as config_module
from ..core.account_exceptions import AbstractedAccountError
from ..core.config import Config
from ..core.logging_config import setup_logging
from .scenario import ScenarioError, ScenarioRunner, StepResult, load_scenario

logger = logging.getLogger(__name__)

console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=Config.LOG_LEVEL,
    show_default=True,
    help="Log level for JSON logs written to stderr.",
)
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_output: bool):
    """
    Arcwallet CLI - abstracted accounts with plugin delegation.
    """
    ctx.ensure_object(dict)
    setup_logging(
        name="arcwallet",
        log_file=Config.LOG_FILE,
        level=log_level,
        environment=Config.ENVIRONMENT,
    )
    ctx.obj["json_output"] = json_output


@cli.command("simulate")
@click.argument("scenario_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def simulate(ctx: click.Context, scenario_file: Path):
    """Run SCENARIO_FILE and report each step's outcome."""
    try:
        runner = ScenarioRunner(load_scenario(scenario_file))
        results = runner.run()
    except (ScenarioError, AbstractedAccountError) as exc:
        _cli_fail(exc)
        return

    account = runner.account.describe() if runner.account else {}
    if ctx.obj.get("json_output"):
        payload = {
            "round": runner.ledger.round,
            "steps": [result.to_dict() for result in results],
            "account": account,
        }
        click.echo(json.dumps(payload, indent=2, default=str))
    else:
        console.print(_results_table(results))
        console.print(_grants_table(account))

    mismatched = [result for result in results if not result.matched]
    if mismatched:
        console.print(f"[bold red]{len(mismatched)} step(s) did not match their expectation[/]")
        sys.exit(1)


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context):
    """Show the effective configuration."""
    payload = config_module.as_dict()
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return
    table = Table(title="Configuration", box=box.SIMPLE)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in payload.items():
        table.add_row(key, str(value))
    console.print(table)


def _results_table(results: List[StepResult]) -> Table:
    table = Table(title="Scenario", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Round", justify="right")
    table.add_column("Outcome")
    table.add_column("Detail")
    for result in results:
        if result.committed:
            outcome = "[green]committed[/]"
            detail = ""
        else:
            outcome = f"[red]rejected[/] ({result.error})"
            detail = result.message
        if not result.matched:
            outcome += f" [bold red]expected {result.expected}[/]"
        table.add_row(str(result.index), result.label, str(result.round), outcome, detail)
    return table


def _grants_table(account: Dict[str, Any]) -> Table:
    table = Table(title=f"Grants of account {account.get('app_id', '?')}", box=box.SIMPLE)
    table.add_column("Grant", style="cyan")
    table.add_column("Last valid round", justify="right")
    table.add_column("Cooldown", justify="right")
    table.add_column("Last called", justify="right")
    table.add_column("Admin")
    for key, grant in (account.get("grants") or {}).items():
        table.add_row(
            key,
            str(grant["last_valid_round"]),
            str(grant["cooldown"]),
            "-" if grant["last_called"] is None else str(grant["last_called"]),
            "yes" if grant["admin_privileges"] else "no",
        )
    return table


def main():
    """Console script entry point."""
    return cli(obj={})


if __name__ == "__main__":
    sys.exit(main() or 0)
