"""
CLI utility helpers: settings assembly and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from dropwatch.core.errors import ConfigurationError
from dropwatch.core.settings import DropwatchSettings
from dropwatch.engine.loader import load_engine
from dropwatch.engine.protocol import ComputeEngine
from dropwatch.orchestration.runner import RunVerdict

console = Console()
err_console = Console(stderr=True)

CONFIG_EXIT_CODE = 2


# ── Settings / engine helpers ────────────────────────────────────────────


def build_settings(overrides: dict[str, Any] | None = None) -> DropwatchSettings:
    """Settings from env/.env with non-None CLI overrides applied on top."""
    values = {k: v for k, v in (overrides or {}).items() if v is not None}
    try:
        return DropwatchSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}", cause=e) from e


def build_engine(settings: DropwatchSettings) -> ComputeEngine:
    if not settings.engine:
        raise ConfigurationError(
            "No compute engine configured. Pass --engine 'package.module:factory' "
            "or set DROPWATCH_ENGINE."
        )
    return load_engine(settings.engine)


def fail_config(error: ConfigurationError) -> typer.Exit:
    """Print a configuration error and return the Exit to raise."""
    err_console.print(f"[bold red]Configuration error[/bold red]: {error.message}")
    return typer.Exit(code=CONFIG_EXIT_CODE)


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as a two-column table."""
    table = Table(title=title or None, show_header=False, pad_edge=False)
    table.add_column("key", style="cyan")
    table.add_column("value", overflow="fold")
    for k, v in data.items():
        table.add_row(k, "" if v is None else str(v))
    console.print(table)


def print_verdict(verdict: RunVerdict) -> None:
    colour = "green" if verdict.ok else "red"
    console.print(f"[bold {colour}]{verdict.status.value}[/bold {colour}]  {verdict.work_item}")
    if verdict.faulted_step is not None:
        console.print(f"  [red]Marker[/red]: {verdict.faulted_step.value}")
        console.print(f"  [red]Error[/red]: {verdict.error}")

    table = Table(show_lines=False, pad_edge=False)
    table.add_column("step")
    table.add_column("status")
    table.add_column("seconds", justify="right")
    for record in verdict.steps:
        seconds = record.duration_seconds
        table.add_row(
            record.step.value,
            record.status,
            "" if seconds is None else f"{seconds:.2f}",
        )
    console.print(table)
    if verdict.final_stage is not None:
        console.print(f"[dim]Moved to {verdict.final_stage.value}[/dim]")
