"""
Root Typer application for the dropwatch CLI.

Global options override settings from ``DROPWATCH_*`` environment
variables and ``.env``::

    dropwatch --root /data/drop --engine mypkg.engine:create run
    dropwatch --root /data/drop once
    dropwatch --root /data/drop config --json
    dropwatch --root /data/drop status --tail 50
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from typer import Typer

from dropwatch import __version__
from dropwatch.cli.utils import (
    build_engine,
    build_settings,
    console,
    err_console,
    fail_config,
    print_dict,
    print_json,
    print_verdict,
)
from dropwatch.core.context import RunContext
from dropwatch.core.errors import ConfigurationError
from dropwatch.core.settings import DropwatchSettings
from dropwatch.core.status_log import StatusLog
from dropwatch.framework.logging import configure_logging

app = Typer(
    name="dropwatch",
    help="dropwatch: drop-folder job processing for compute-engine projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dropwatch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    root: Path | None = typer.Option(None, "--root", "-r", help="Root of the drop-folder tree."),  # noqa: UP007
    engine: str | None = typer.Option(  # noqa: UP007
        None, "--engine", "-e", help="Compute engine factory, 'package.module:factory'."
    ),
    model: str | None = typer.Option(None, "--model", help="Model name in the project."),  # noqa: UP007
    experiment: str | None = typer.Option(None, "--experiment", help="Experiment to run."),  # noqa: UP007
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR."),  # noqa: UP007
    log_format: str | None = typer.Option(None, "--log-format", help="console or json."),  # noqa: UP007
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """dropwatch CLI: run the service, process one item, inspect config and status."""
    ctx.obj = {
        "root_folder": root,
        "engine": engine,
        "model_name": model,
        "experiment_name": experiment,
        "log_level": log_level,
        "log_format": log_format,
    }


def _settings(ctx: typer.Context, **extra: Any) -> DropwatchSettings:
    overrides = dict(ctx.obj or {})
    overrides.update(extra)
    try:
        settings = build_settings(overrides)
    except ConfigurationError as e:
        raise fail_config(e) from e
    configure_logging(level=settings.log_level, format=settings.log_format, force=True)
    return settings


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run(
    ctx: typer.Context,
    no_watch: bool = typer.Option(False, "--no-watch", help="Timer scans only, no filesystem events."),
) -> None:
    """Start the service in the foreground until Ctrl-C / SIGTERM.

    Example::

        dropwatch --root /data/drop --engine mypkg.engine:create run
    """
    from dropwatch.service import DropFolderService

    settings = _settings(ctx)
    try:
        service = DropFolderService(settings, build_engine(settings), watch=not no_watch)
    except ConfigurationError as e:
        raise fail_config(e) from e

    console.print(
        f"[bold green]Watching[/bold green] {service.context.incoming_dir} "
        f"(pattern={service.context.watch_pattern}, poll={service.context.poll_interval_seconds}s)"
    )
    try:
        service.run_forever()
    except KeyboardInterrupt:
        service.stop()
        console.print("\n[yellow]Service stopped by user[/yellow]")


@app.command("once")
def once(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print the verdict as JSON."),
) -> None:
    """Process at most one waiting work item and print the verdict.

    Exits with code 1 when the run faulted.
    """
    from dropwatch.service import DropFolderService

    settings = _settings(ctx)
    try:
        service = DropFolderService(settings, build_engine(settings), watch=False)
    except ConfigurationError as e:
        raise fail_config(e) from e

    verdict = service.run_once()
    if verdict is None:
        console.print("[dim]No work item processed.[/dim]")
        return

    if as_json:
        print_json(verdict.to_dict())
    else:
        print_verdict(verdict)
    if not verdict.ok:
        raise typer.Exit(code=1)


@app.command("config")
def config(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print as JSON."),
) -> None:
    """Show the resolved run context."""
    settings = _settings(ctx)
    try:
        run_context = RunContext.from_settings(settings)
    except ConfigurationError as e:
        raise fail_config(e) from e

    data = run_context.to_dict()
    data["engine"] = settings.engine
    if as_json:
        print_json(data)
    else:
        print_dict(data, title="dropwatch configuration")


@app.command("status")
def status(
    ctx: typer.Context,
    tail: int = typer.Option(20, "--tail", "-n", min=0, help="Number of lines to show (0: all)."),
) -> None:
    """Print the last lines of the operator status file."""
    settings = _settings(ctx)
    status_log = StatusLog(settings.status_path)
    lines = status_log.read_lines(tail=tail or None)
    if not lines:
        err_console.print(f"[yellow]No status entries in {settings.status_path}[/yellow]")
        return
    for line in lines:
        console.print(line, markup=False, highlight=False)
