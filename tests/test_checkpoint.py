"""Tests for the restart checkpoint store."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from interfacewatchdog.common.state import CheckpointError, CheckpointStore, parse_checkpoint
from interfacewatchdog.monitor.registry import build_watchdogs
from interfacewatchdog.monitor.watchdog import Watchdog


class TestLoad:
    def test_missing_file_gives_empty_checkpoint(self, tmp_path: Path) -> None:
        checkpoint = CheckpointStore(tmp_path / "shadow-options.json").load()
        assert checkpoint.watchdogs == {}
        assert checkpoint.file_created

    def test_corrupt_file_is_ignored(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "shadow-options.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="interfacewatchdog.state"):
            checkpoint = CheckpointStore(path).load()
        assert checkpoint.watchdogs == {}
        assert "Corrupt checkpoint" in caplog.text

    def test_wrong_shape_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "shadow-options.json"
        path.write_text(json.dumps([1, 2, 3]))
        assert CheckpointStore(path).load().watchdogs == {}

    def test_bad_entries_are_skipped(self) -> None:
        checkpoint = parse_checkpoint({
            "fileCreated": "2026-01-01T00:00:00+00:00",
            "watchdogs": [
                {"problemsSinceFileCreation": 3},
                {"name": "bad", "restartCount": "two"},
                {"name": "can0", "problemsSinceFileCreation": 7, "restartCount": 2},
            ],
        })
        assert list(checkpoint.watchdogs) == ["can0"]
        assert checkpoint.file_created == "2026-01-01T00:00:00+00:00"


class TestSave:
    def test_writes_only_restart_relevant_fields(self, tmp_path: Path) -> None:
        path = tmp_path / "shadow-options.json"
        watchdog = Watchdog(name="can0", interface="can0", restart_count=2,
                            problems_since_file_creation=7, problems_since_last_restart=1,
                            exception_count=9, problem_count=4)
        idle = Watchdog(name="gps", interface="ttyUSB0")
        CheckpointStore(path).save([watchdog, idle])

        data = json.loads(path.read_text())
        assert set(data) == {"fileCreated", "watchdogs"}
        assert data["watchdogs"] == [
            {"name": "can0", "problemsInLastSession": 1, "problemsSinceFileCreation": 7, "restartCount": 2},
            {"name": "gps", "problemsInLastSession": 0, "problemsSinceFileCreation": 0},
        ]
        assert not path.with_suffix(".tmp").exists()

    def test_file_created_is_preserved(self, tmp_path: Path) -> None:
        path = tmp_path / "shadow-options.json"
        path.write_text(json.dumps({"fileCreated": "2025-05-05T05:05:05+00:00", "watchdogs": []}))
        store = CheckpointStore(path)
        store.load()
        store.save([Watchdog(name="can0", interface="can0")])
        assert json.loads(path.read_text())["fileCreated"] == "2025-05-05T05:05:05+00:00"

    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = CheckpointStore(blocker / "shadow-options.json")
        with pytest.raises(CheckpointError):
            store.save([Watchdog(name="can0", interface="can0")])

    def test_round_trip_into_fresh_registry(self, tmp_path: Path) -> None:
        path = tmp_path / "shadow-options.json"
        CheckpointStore(path).save([
            Watchdog(name="can0", interface="can0", problems_since_file_creation=7,
                     restart_count=2, exception_count=5, problem_count=3,
                     problems_since_last_restart=3),
        ])

        checkpoint = CheckpointStore(path).load()
        (w,) = build_watchdogs([{"interface": "can0", "name": "can0"}], checkpoint)
        assert w.problems_since_file_creation == 7
        assert w.restart_count == 2
        assert (w.exception_count, w.problem_count, w.problems_since_last_restart) == (0, 0, 0)
