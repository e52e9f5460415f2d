"""Tests for the dropwatch CLI."""

import json
import logging

import pytest
from typer.testing import CliRunner

from dropwatch import __version__
from dropwatch.cli.app import app
from dropwatch.engine.testing import write_json_project

ENGINE_REF = "dropwatch.engine.testing:JsonProjectEngine"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolate(monkeypatch, tmp_path):
    """No ambient DROPWATCH_* settings, and restore root logging handlers."""
    for name in ("DROPWATCH_ROOT_FOLDER", "DROPWATCH_ENGINE", "DROPWATCH_MODEL_NAME", "DROPWATCH_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def invoke(*args):
    return runner.invoke(app, ["--log-level", "ERROR", *args])


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"dropwatch {__version__}" in result.stdout

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "once" in result.stdout


class TestConfigCommand:
    def test_json(self, drop_root):
        result = invoke("--root", str(drop_root), "--model", "Plant", "config", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["incoming_dir"] == str(drop_root / "Incoming")
        assert data["model_name"] == "Plant"
        assert data["engine"] is None

    def test_table(self, drop_root):
        result = invoke("--root", str(drop_root), "config")
        assert result.exit_code == 0
        assert "incoming_dir" in result.stdout

    def test_missing_root_is_config_error(self, tmp_path):
        result = invoke("--root", str(tmp_path / "absent"), "config")
        assert result.exit_code == 2

    def test_missing_stage_folder(self, drop_root):
        (drop_root / "Error").rmdir()
        assert invoke("--root", str(drop_root), "config").exit_code == 2


class TestOnceCommand:
    def test_success(self, drop_root):
        write_json_project(drop_root / "Incoming" / "Plant.spfx")
        result = invoke("--root", str(drop_root), "--engine", ENGINE_REF, "once", "--json")

        assert result.exit_code == 0, result.output
        verdict = json.loads(result.stdout)
        assert verdict["status"] == "Success"
        assert verdict["final_stage"] == "Success"
        assert (drop_root / "Success" / "Plant.spfx").exists()

    def test_fault_exits_one(self, drop_root):
        write_json_project(drop_root / "Incoming" / "Plant.spfx")
        result = invoke("--root", str(drop_root), "--engine", ENGINE_REF, "--model", "Other", "once")

        assert result.exit_code == 1
        assert "Faulted" in result.stdout
        assert (drop_root / "Error" / "Plant.spfx").exists()

    def test_nothing_to_do(self, drop_root):
        result = invoke("--root", str(drop_root), "--engine", ENGINE_REF, "once")
        assert result.exit_code == 0
        assert "No work item processed." in result.stdout

    def test_no_engine_configured(self, drop_root):
        assert invoke("--root", str(drop_root), "once").exit_code == 2

    def test_bad_engine_ref(self, drop_root):
        assert invoke("--root", str(drop_root), "--engine", "nope", "once").exit_code == 2


class TestStatusCommand:
    def test_tail(self, drop_root):
        (drop_root / "status.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
        result = invoke("--root", str(drop_root), "status", "--tail", "2")
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["two", "three"]

    def test_all_lines(self, drop_root):
        (drop_root / "status.txt").write_text("one\ntwo\n", encoding="utf-8")
        result = invoke("--root", str(drop_root), "status", "-n", "0")
        assert result.stdout.splitlines() == ["one", "two"]

    def test_empty(self, drop_root):
        result = invoke("--root", str(drop_root), "status")
        assert result.exit_code == 0
        assert result.stdout.strip() == "" or "No status entries" in result.output
