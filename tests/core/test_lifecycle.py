"""Tests for WorkItem moves between stage folders."""

import pytest

from dropwatch.core.context import Stage
from dropwatch.core.errors import ErrorCategory, FileLifecycleError, NotFound
from dropwatch.core.lifecycle import move_to_folder


class TestMoveToFolder:
    """Low-level move."""

    def test_moves_file(self, tmp_path):
        src = tmp_path / "a" / "Plant.spfx"
        src.parent.mkdir()
        src.write_text("new")
        dest = tmp_path / "b"
        dest.mkdir()

        target = move_to_folder(src, dest)

        assert target == dest / "Plant.spfx"
        assert target.read_text() == "new"
        assert not src.exists()

    def test_overwrites_existing_destination(self, tmp_path):
        src = tmp_path / "a" / "Plant.spfx"
        src.parent.mkdir()
        src.write_text("new")
        dest = tmp_path / "b"
        dest.mkdir()
        (dest / "Plant.spfx").write_text("stale")

        target = move_to_folder(src, dest)

        assert target.read_text() == "new"
        assert not src.exists()

    def test_missing_source_raises_not_found(self, tmp_path):
        dest = tmp_path / "b"
        dest.mkdir()
        with pytest.raises(NotFound) as exc_info:
            move_to_folder(tmp_path / "missing.spfx", dest)
        assert isinstance(exc_info.value, FileLifecycleError)
        assert exc_info.value.category == ErrorCategory.STORAGE

    def test_missing_destination_raises_not_found(self, tmp_path):
        src = tmp_path / "Plant.spfx"
        src.write_text("x")
        with pytest.raises(NotFound):
            move_to_folder(src, tmp_path / "nowhere")
        assert src.exists()

    def test_source_directory_is_not_a_file(self, tmp_path):
        (tmp_path / "dir").mkdir()
        (tmp_path / "dest").mkdir()
        with pytest.raises(NotFound):
            move_to_folder(tmp_path / "dir", tmp_path / "dest")

    def test_os_error_wrapped(self, tmp_path, monkeypatch):
        src = tmp_path / "Plant.spfx"
        src.write_text("x")
        dest = tmp_path / "dest"
        dest.mkdir()

        def boom(a, b):
            raise PermissionError("denied")

        monkeypatch.setattr("dropwatch.core.lifecycle.os.replace", boom)
        with pytest.raises(FileLifecycleError) as exc_info:
            move_to_folder(src, dest)
        assert not isinstance(exc_info.value, NotFound)
        assert isinstance(exc_info.value.__cause__, PermissionError)


class TestFileLifecycle:
    """Stage-aware moves."""

    def test_claim_complete_success(self, lifecycle, drop_file, context):
        incoming = drop_file("Plant.spfx")
        processing = lifecycle.claim(incoming)
        assert processing == context.processing_dir / "Plant.spfx"
        assert lifecycle.stage_of("Plant.spfx") == Stage.PROCESSING

        final = lifecycle.complete(processing, success=True)
        assert final.parent == context.success_dir
        assert lifecycle.stage_of("Plant.spfx") == Stage.SUCCESS

    def test_complete_failure_goes_to_error(self, lifecycle, drop_file):
        processing = lifecycle.claim(drop_file("Plant.spfx"))
        lifecycle.complete(processing, success=False)
        assert lifecycle.stage_of("Plant.spfx") == Stage.ERROR

    def test_reject_foreign_file(self, lifecycle, drop_file):
        lifecycle.reject(drop_file("notes.txt"))
        assert lifecycle.stage_of("notes.txt") == Stage.ERROR

    def test_stage_of_unknown(self, lifecycle):
        assert lifecycle.stage_of("ghost.spfx") is None

    def test_list_stage_sorted(self, lifecycle, drop_file):
        drop_file("b.spfx")
        drop_file("a.spfx")
        assert [p.name for p in lifecycle.list_stage(Stage.INCOMING)] == ["a.spfx", "b.spfx"]

    def test_moves_recorded_in_status_log(self, lifecycle, drop_file, status_log):
        lifecycle.claim(drop_file("Plant.spfx"))
        lines = status_log.read_lines()
        assert len(lines) == 1
        assert "Info: Moving File=" in lines[0]
        assert "Processing" in lines[0]
