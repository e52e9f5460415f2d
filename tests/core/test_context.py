"""Tests for DropwatchSettings and RunContext."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from dropwatch.core.context import RunContext, Stage
from dropwatch.core.errors import ConfigurationError
from dropwatch.core.settings import DropwatchSettings, LoadWarningPolicy


class TestDropwatchSettings:
    """pydantic-settings layer."""

    def test_defaults(self, tmp_path):
        settings = DropwatchSettings(root_folder=tmp_path, _env_file=None)
        assert settings.extension == ".spfx"
        assert settings.model_name == "Model"
        assert settings.experiment_name is None
        assert settings.run_plan is True
        assert settings.save_project is True
        assert settings.run_experiment is False
        assert settings.load_warning_policy == LoadWarningPolicy.REJECT
        assert settings.status_path == tmp_path / "status.txt"
        assert settings.export_path == tmp_path / "ScheduleExport.xml"
        assert settings.override_path is None

    def test_env_prefix(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DROPWATCH_ROOT_FOLDER", str(tmp_path))
        monkeypatch.setenv("DROPWATCH_RUN_EXPERIMENT", "true")
        monkeypatch.setenv("DROPWATCH_EXPERIMENT_NAME", "Weekly")
        settings = DropwatchSettings(_env_file=None)
        assert settings.root_folder == tmp_path
        assert settings.run_experiment is True
        assert settings.experiment_name == "Weekly"

    @pytest.mark.parametrize("raw", ["spfx", "*.spfx", ".SPFX", " .spfx "])
    def test_extension_normalized(self, tmp_path, raw):
        assert DropwatchSettings(root_folder=tmp_path, extension=raw, _env_file=None).extension == ".spfx"

    def test_blank_names(self, tmp_path):
        settings = DropwatchSettings(
            root_folder=tmp_path, experiment_name="  ", trigger_filename="", model_name=" ", _env_file=None
        )
        assert settings.experiment_name is None
        assert settings.trigger_filename is None
        assert settings.model_name == "Model"

    def test_poll_interval_must_be_positive(self, tmp_path):
        with pytest.raises(ValidationError):
            DropwatchSettings(root_folder=tmp_path, poll_interval_seconds=0, _env_file=None)

    def test_settings_frozen(self, tmp_path):
        settings = DropwatchSettings(root_folder=tmp_path, _env_file=None)
        with pytest.raises(ValidationError):
            settings.run_plan = False

    def test_absolute_paths_kept(self, tmp_path):
        other = tmp_path / "elsewhere" / "status.log"
        settings = DropwatchSettings(root_folder=tmp_path, status_file=other, _env_file=None)
        assert settings.status_path == other


class TestRunContext:
    """Filesystem validation and helpers."""

    def test_from_settings(self, context, drop_root):
        assert context.incoming_dir == drop_root / "Incoming"
        assert context.folder_for(Stage.ERROR) == drop_root / "Error"
        assert context.processing_path("Plant.spfx") == drop_root / "Processing" / "Plant.spfx"

    def test_missing_root(self, tmp_path):
        settings = DropwatchSettings(root_folder=tmp_path / "nope", _env_file=None)
        with pytest.raises(ConfigurationError, match="Root Folder"):
            RunContext.from_settings(settings)

    @pytest.mark.parametrize("missing", ["Incoming", "Processing", "Success", "Error"])
    def test_missing_stage_folder(self, drop_root, make_settings, missing):
        (drop_root / missing).rmdir()
        with pytest.raises(ConfigurationError) as exc_info:
            RunContext.from_settings(make_settings())
        assert exc_info.value.context.stage == missing

    def test_folders_must_be_distinct(self, make_settings):
        with pytest.raises(ConfigurationError, match="distinct"):
            RunContext.from_settings(make_settings(success_folder="Error"))

    def test_status_folder_must_exist(self, make_settings, drop_root):
        with pytest.raises(ConfigurationError, match="Status Folder"):
            RunContext.from_settings(make_settings(status_file=drop_root / "logs" / "status.txt"))

    def test_context_is_frozen(self, context):
        with pytest.raises(AttributeError):
            context.run_plan = False

    def test_effective_experiment_name(self, make_context):
        assert make_context().effective_experiment_name == "Experiment1"
        assert make_context(experiment_name="Weekly").effective_experiment_name == "Weekly"

    def test_to_dict_plain_values(self, context):
        data = context.to_dict()
        assert isinstance(data["incoming_dir"], str)
        assert data["load_warning_policy"] == "reject"


class TestMatches:
    """Work item selection."""

    def test_extension_case_insensitive(self, context):
        assert context.matches(Path("Plant.spfx"))
        assert context.matches(Path("PLANT.SPFX"))
        assert not context.matches(Path("Plant.txt"))
        assert not context.matches(Path("Plant.spfx.bak"))

    def test_bare_extension_not_a_work_item(self, context):
        assert not context.matches(Path(".spfx"))

    def test_trigger_filename_mode(self, make_context):
        context = make_context(trigger_filename="Go.spfx")
        assert context.matches(Path("go.SPFX"))
        assert not context.matches(Path("Other.spfx"))
        assert context.watch_pattern == "Go.spfx"

    def test_watch_pattern_extension_mode(self, context):
        assert context.watch_pattern == "*.spfx"
