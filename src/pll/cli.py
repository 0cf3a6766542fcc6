from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

import click
import typer
from rich.console import Console

from .backoff import BackoffController
from .config import Defaults, build_settings
from .executor import ShellExecutor
from .logging import get_logger, setup_logging
from .status import StatusConsole

# sysexits.h EX_USAGE; kept apart from the run result codes 0-5
USAGE_ERROR = 64

app = typer.Typer(add_completion=False, help="pll - like watch but exits on success")
console = Console(stderr=True)
log = get_logger(__name__)


def _package_version() -> str:
    try:
        return version("pll")
    except PackageNotFoundError:
        return "0.0.0"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pll {_package_version()}")
        raise typer.Exit()


@app.command()
def run(
    command: str = typer.Argument(..., help="Shell command line to run until it succeeds"),
    initial_interval: str = typer.Option(
        Defaults.initial_interval, "--initial-interval", "-i", help="initial wait time duration"
    ),
    max_interval: str = typer.Option(Defaults.max_interval, "--max-interval", help="max interval duration"),
    max_elapsed: str = typer.Option(Defaults.max_elapsed, "--max-elapsed", "-m", help="max elapsed duration"),
    multiplier: float = typer.Option(Defaults.multiplier, "--multiplier", "-x", help="multiplier for interval"),
    max_tries: int = typer.Option(Defaults.max_tries, "--max-tries", "-t", min=0, help="max tries total"),
    kill_on_deadline: bool = typer.Option(
        False, "--kill-on-deadline/--no-kill-on-deadline", help="Kill a command still running at max elapsed"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG/INFO/WARNING/ERROR"),
    show_version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """Run COMMAND with exponential backoff until it exits 0."""
    try:
        setup_logging(log_level)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e
    try:
        settings = build_settings(
            initial_interval=initial_interval,
            max_interval=max_interval,
            max_elapsed=max_elapsed,
            multiplier=multiplier,
            max_tries=max_tries,
            kill_on_deadline=kill_on_deadline,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    log.debug("settings: %s", settings)
    controller = BackoffController(ShellExecutor(), StatusConsole())
    result = controller.start(command, settings)
    log.debug("finished %s after %d attempt(s)", result.name, controller.attempts)
    raise typer.Exit(code=int(result))


def main() -> None:
    """Console-script entry point; maps usage errors to a dedicated exit code."""
    try:
        rc = app(standalone_mode=False)
    except click.UsageError as e:
        e.show()
        rc = USAGE_ERROR
    except click.ClickException as e:
        e.show()
        rc = e.exit_code
    except click.Abort:
        console.print("[red]Aborted![/]")
        rc = 1
    sys.exit(rc or 0)
