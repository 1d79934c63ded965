"""Tests for config loading."""

from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from interfacewatchdog.common.config import checkpoint_path, load_config


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(dedent(text))
    return path


class TestLoadConfig:
    def test_reads_watchdogs_and_fills_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path, f"""\
            data_dir: {tmp_path}/data
            watchdogs:
              - interface: can0
                action: restart-server
            """)
        cfg = load_config(path)
        assert cfg["watchdogs"] == [{"interface": "can0", "action": "restart-server"}]
        assert cfg["restart_delay"] == 1.0
        assert cfg["notifier"] == "log"
        assert checkpoint_path(cfg) == tmp_path / "data" / "shadow-options.json"
        assert (tmp_path / "data").is_dir()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IFWATCHDOG_DATA_DIR", str(tmp_path / "elsewhere"))
        cfg = load_config(_write(tmp_path, "log_level: DEBUG\n"))
        assert cfg["data_dir"] == str(tmp_path / "elsewhere")
        assert cfg["watchdogs"] == []

    def test_watchdogs_must_be_a_list(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "watchdogs:\n  interface: can0\n"))

    def test_unknown_notifier_falls_back(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "notifier: pager\nrestart_delay: '2'\n"))
        assert cfg["notifier"] == "log"
        assert cfg["restart_delay"] == 2.0
