"""Shared fixtures for watchdog, registry, plugin and status API tests."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio

from interfacewatchdog.common.state import CheckpointStore
from interfacewatchdog.monitor.notify import RecordingNotifier
from interfacewatchdog.monitor.plugin import InterfaceWatchdogPlugin


def stats_event(**rates: float) -> dict[str, Any]:
    """Build a host SERVERSTATISTICS event with the given per-interface delta rates."""
    return {
        "type": "SERVERSTATISTICS",
        "data": {
            "providerStatistics": {
                name: {"deltaRate": rate, "deltaCount": 0} for name, rate in rates.items()
            },
        },
    }


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def cfg(tmp_path: Path) -> dict[str, Any]:
    return {
        "data_dir": str(tmp_path / "data"),
        "log_dir": str(tmp_path / "logs"),
        "log_level": "DEBUG",
        "restart_delay": 0.0,
        "notifier": "log",
        "watchdogs": [
            {
                "interface": "can0",
                "name": "can0",
                "threshold": 0,
                "startActionThreshold": 3,
                "stopActionThreshold": 5,
                "action": "restart-server",
            },
        ],
    }


@pytest.fixture()
def exited() -> threading.Event:
    return threading.Event()


@pytest.fixture()
def exit_fn(exited: threading.Event) -> MagicMock:
    return MagicMock(side_effect=exited.set)


@pytest.fixture()
def make_plugin(cfg: dict[str, Any], notifier: RecordingNotifier, exit_fn: MagicMock):
    """Factory for plugins sharing one data dir, as successive processes would."""

    def _make(store: CheckpointStore | None = None) -> InterfaceWatchdogPlugin:
        return InterfaceWatchdogPlugin(cfg, notifier=notifier, store=store, exit_fn=exit_fn)

    return _make


@pytest_asyncio.fixture()
async def client(make_plugin):
    """Async httpx client bound to the status app with a started plugin."""
    from interfacewatchdog.dashboard.app import create_app

    plugin = make_plugin()
    plugin.start()
    app = create_app(plugin)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
