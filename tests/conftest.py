"""
Shared pytest fixtures for dropwatch tests.

This module provides:
- A drop-folder tree (Incoming/Processing/Success/Error) under tmp_path
- A RunContext factory with per-test toggle overrides
- StatusLog / FileLifecycle wired to that tree
- Engine doubles and a project-file writer

Usage:
    def test_something(make_context, drop_root):
        context = make_context(run_experiment=True)
        ...
"""

import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import structlog

# Ensure dropwatch package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dropwatch.core.context import RunContext
from dropwatch.core.lifecycle import FileLifecycle
from dropwatch.core.settings import DropwatchSettings
from dropwatch.core.status_log import StatusLog
from dropwatch.engine.testing import FakeModel, FakeProject, ScriptedEngine
from dropwatch.framework.logging import clear_context

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53)


@pytest.fixture(autouse=True)
def _reset_logging_state():
    """Keep structlog config and log context from leaking between tests."""
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


@pytest.fixture
def drop_root(tmp_path: Path) -> Path:
    """Root folder with the four stage folders."""
    for name in ("Incoming", "Processing", "Success", "Error"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def make_settings(drop_root: Path) -> Callable[..., DropwatchSettings]:
    def _make(**overrides: Any) -> DropwatchSettings:
        return DropwatchSettings(root_folder=drop_root, _env_file=None, **overrides)

    return _make


@pytest.fixture
def make_context(make_settings) -> Callable[..., RunContext]:
    def _make(**overrides: Any) -> RunContext:
        return RunContext.from_settings(make_settings(**overrides))

    return _make


@pytest.fixture
def context(make_context) -> RunContext:
    return make_context()


@pytest.fixture
def status_log(context: RunContext) -> StatusLog:
    return StatusLog(context.status_path, clock=lambda: FIXED_NOW)


@pytest.fixture
def lifecycle(context: RunContext, status_log: StatusLog) -> FileLifecycle:
    return FileLifecycle(context, status_log)


@pytest.fixture
def drop_file(drop_root: Path) -> Callable[..., Path]:
    """Create a file in a stage folder (default Incoming)."""

    def _drop(name: str = "Plant.spfx", content: str = "{}", folder: str = "Incoming") -> Path:
        path = drop_root / folder / name
        path.write_text(content, encoding="utf-8")
        return path

    return _drop


@pytest.fixture
def model() -> FakeModel:
    return FakeModel("Model", resources={"Cut1": [], "Cut2": []})


@pytest.fixture
def engine(model: FakeModel) -> ScriptedEngine:
    return ScriptedEngine(FakeProject([model]))
