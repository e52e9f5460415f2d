"""End-to-end runs through DropFolderService with the JSON project engine."""

import json
import os
import threading
import time

import pytest

from dropwatch.core.context import Stage
from dropwatch.engine.testing import JsonProjectEngine, write_json_project
from dropwatch.orchestration.runner import RunStep, VerdictStatus
from dropwatch.service import DropFolderService


def _messages(service):
    return [line.split(": ", 1)[1] for line in service.status_log.read_lines()]


def _wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.mark.integration
class TestSynchronousPass:
    """``run_once`` on the calling thread."""

    def test_plan_and_save(self, make_settings, drop_root):
        path = write_json_project(drop_root / "Incoming" / "Plant.spfx", {"Model": {"resources": {"Cut1": []}}})
        engine = JsonProjectEngine()
        service = DropFolderService(make_settings(), engine, watch=False)

        verdict = service.run_once()

        assert verdict is not None
        assert verdict.status == VerdictStatus.SUCCESS
        assert verdict.final_stage == Stage.SUCCESS
        assert not path.exists()
        done = drop_root / "Success" / "Plant.spfx"
        assert done.exists()
        assert engine.count("load_project") == 1
        assert engine.count("run_plan") == 1
        assert engine.count("save_project") == 1
        assert json.loads(done.read_text(encoding="utf-8"))["models"]["Model"]["plan_runs"] == 1

        messages = _messages(service)
        ordered = [
            f"Info: Starting run From=Manual. Found file={path}",
            f"Info: Processing Project={path}",
            "Run Plan? (True)",
            "Run Plan completed.",
            "Saving Project After Schedule Run",
            "Info: Project Saved.",
            "Post-Run Save completed.",
            "Run completed.",
        ]
        positions = [messages.index(m) for m in ordered]
        assert positions == sorted(positions)

    def test_missing_experiment_faults_without_saving(self, make_settings, drop_root):
        write_json_project(drop_root / "Incoming" / "Plant.spfx")
        engine = JsonProjectEngine()
        service = DropFolderService(make_settings(run_experiment=True), engine, watch=False)

        verdict = service.run_once()

        assert verdict.status == VerdictStatus.FAULTED
        assert verdict.faulted_step == RunStep.RUN_EXPERIMENT
        assert (drop_root / "Error" / "Plant.spfx").exists()
        assert engine.count("save_project") == 0
        assert any("Marker=Run Experiment." in m for m in _messages(service))

    def test_full_step_set(self, make_settings, drop_root):
        write_json_project(
            drop_root / "Incoming" / "Plant.spfx",
            {
                "Model": {
                    "resources": {"Cut1": [], "Cut2": []},
                    "experiments": {"Weekly": {"scenarios": ["Base", "Rush"], "replications": 2}},
                    "resource_usage_log": [
                        {
                            "owner_name": "Order-1",
                            "owner_id": "O1",
                            "resource_name": "Cut1",
                            "start_time": "2026-01-05T08:00:00",
                            "end_time": "2026-01-05T09:00:00",
                        }
                    ],
                    "target_results": [{"owner_id": "O1", "probability": 0.93}],
                }
            },
        )
        override = drop_root / "overrides.csv"
        override.write_text(
            "ResourceName,StartTime,EndTime,Category\nCut1,2026-01-05T08:00:00,2026-01-05T12:00:00,Maintenance\n",
            encoding="utf-8",
        )
        engine = JsonProjectEngine()
        settings = make_settings(
            override_file="overrides.csv",
            delete_status_first=True,
            run_risk_analysis=True,
            run_experiment=True,
            experiment_name="Weekly",
            export_schedule=True,
        )
        service = DropFolderService(settings, engine, watch=False)

        verdict = service.run_once()

        assert verdict.ok, verdict.error
        assert verdict.skipped_steps == []
        assert engine.count("save_project") == 2
        assert engine.methods().index("experiment.reset") < engine.methods().index("experiment.run")
        assert not override.exists()
        assert (drop_root / "ScheduleExport.xml").exists()

        document = json.loads((drop_root / "Success" / "Plant.spfx").read_text(encoding="utf-8"))
        resources = document["models"]["Model"]["resources"]
        assert [row["category"] for row in resources["Cut1"]] == ["Maintenance"]
        assert resources["Cut2"] == []

    def test_override_file_kept_in_incoming(self, make_settings, drop_root):
        write_json_project(drop_root / "Incoming" / "A.spfx", {"Model": {"resources": {"Cut1": []}}})
        override = drop_root / "Incoming" / "exceptions.csv"
        override.write_text(
            "ResourceName,StartTime,EndTime,Category\nCut1,2026-01-05T08:00:00,2026-01-05T12:00:00,Maintenance\n",
            encoding="utf-8",
        )
        settings = make_settings(override_file="Incoming/exceptions.csv")
        service = DropFolderService(settings, JsonProjectEngine(), watch=False)

        verdict = service.run_once()

        assert verdict.ok, verdict.error
        assert verdict.record(RunStep.IMPORT_OVERRIDES).detail == {"applied": 1, "skipped": 0}
        assert not override.exists()
        assert not (drop_root / "Error" / "exceptions.csv").exists()

    def test_load_warnings_reject(self, make_settings, drop_root):
        write_json_project(drop_root / "Incoming" / "Plant.spfx", load_warnings=["Unresolved reference"])
        engine = JsonProjectEngine()
        service = DropFolderService(make_settings(), engine, watch=False)

        verdict = service.run_once()

        assert verdict.faulted_step == RunStep.VALIDATE
        assert engine.count("run_plan") == 0
        assert (drop_root / "Error" / "Plant.spfx").exists()

    def test_nothing_waiting(self, make_settings):
        service = DropFolderService(make_settings(), JsonProjectEngine(), watch=False)
        assert service.run_once() is None

    def test_busy_lock_skips_pass(self, make_settings, drop_root):
        write_json_project(drop_root / "Incoming" / "Plant.spfx")
        lock = threading.Lock()
        service = DropFolderService(make_settings(), JsonProjectEngine(), run_lock=lock, watch=False)
        with lock:
            assert service.run_once() is None
        assert (drop_root / "Incoming" / "Plant.spfx").exists()


@pytest.mark.integration
@pytest.mark.slow
class TestRunningService:
    """Threads, timer and watcher together."""

    def test_timer_scan_processes_waiting_files(self, make_settings, drop_root):
        for name in ("a.spfx", "b.spfx"):
            write_json_project(drop_root / "Incoming" / name)
        (drop_root / "Incoming" / "notes.txt").write_text("hello", encoding="utf-8")
        engine = JsonProjectEngine()
        service = DropFolderService(make_settings(poll_interval_seconds=0.05), engine, watch=False)

        service.start()
        try:
            assert _wait_for(lambda: len(list((drop_root / "Success").iterdir())) == 2)
            assert service.coordinator.wait_idle(5.0)
            health = service.health()
            assert health["healthy"] is True
            assert health["watcher"] is None
        finally:
            service.stop()

        assert (drop_root / "Error" / "notes.txt").exists()
        assert list((drop_root / "Incoming").iterdir()) == []
        assert engine.count("load_project") == 2
        assert not service.is_running
        assert "Info: Service stopped." in _messages(service)

    def test_watcher_picks_up_new_file(self, make_settings, drop_root):
        engine = JsonProjectEngine()
        service = DropFolderService(make_settings(poll_interval_seconds=30), engine)

        service.start()
        try:
            assert service.health()["watcher"]["healthy"] is True
            # Stage outside Incoming, then move in so the file appears complete.
            staged = write_json_project(drop_root / "Plant.spfx")
            os.replace(staged, drop_root / "Incoming" / "Plant.spfx")
            assert _wait_for(lambda: (drop_root / "Success" / "Plant.spfx").exists())
            assert service.coordinator.wait_idle(5.0)
        finally:
            service.stop()

        assert engine.count("load_project") >= 1

    def test_stop_is_idempotent(self, make_settings):
        service = DropFolderService(make_settings(), JsonProjectEngine(), watch=False)
        service.stop()
        service.start()
        service.stop()
        service.stop()
        assert not service.is_running
