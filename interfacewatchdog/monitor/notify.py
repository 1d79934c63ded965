"""Notification sinks for watchdog state changes.

A sink receives ``(path, {"state", "method", "message"})`` where state is
one of normal / alert / warn / alarm.  Delivery problems are logged and
never reach the state machine.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Any, NamedTuple, Protocol

logger = logging.getLogger("interfacewatchdog.notify")

NOTIFICATION_STATES = ("normal", "alert", "warn", "alarm")

_LOG_LEVELS = {
    "normal": logging.INFO,
    "alert": logging.INFO,
    "warn": logging.WARNING,
    "alarm": logging.ERROR,
}


class Notification(NamedTuple):
    path: str
    state: str
    message: str

    def payload(self) -> dict[str, Any]:
        return {"state": self.state, "method": [], "message": self.message}


class Notifier(Protocol):
    def notify(self, path: str, value: dict[str, Any]) -> None: ...


class LogNotifier:
    """Write notifications to the package log."""

    def notify(self, path: str, value: dict[str, Any]) -> None:
        level = _LOG_LEVELS.get(value.get("state", ""), logging.INFO)
        logger.log(level, "%s [%s] %s", path, value.get("state"), value.get("message"))


class DesktopNotifier:
    """Send a macOS notification via osascript, mirrored to the log."""

    def __init__(self, title: str = "Interface Watchdog") -> None:
        self.title = title

    def notify(self, path: str, value: dict[str, Any]) -> None:
        LogNotifier().notify(path, value)
        script = (
            f'display notification "{_escape(value.get("message", ""))}" '
            f'with title "{_escape(self.title)}" '
            f'subtitle "{_escape(str(value.get("state", "")).upper())}: {_escape(path)}"'
        )
        try:
            subprocess.run(
                ["osascript", "-e", script],
                capture_output=True, timeout=10,
            )
        except Exception as e:
            logger.warning("Failed to send notification: %s", e)


class RecordingNotifier:
    """Keep every notification in memory, newest last."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def notify(self, path: str, value: dict[str, Any]) -> None:
        self.sent.append(Notification(path, value["state"], value["message"]))

    def for_path(self, path: str) -> list[Notification]:
        return [n for n in self.sent if n.path == path]


def _escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"')


def deliver(notifier: Notifier, notification: Notification) -> None:
    try:
        notifier.notify(notification.path, notification.payload())
    except Exception as e:
        logger.warning("Failed to deliver notification to %s: %s", notification.path, e)


def make_notifier(cfg: dict[str, Any]) -> Notifier:
    if cfg.get("notifier") == "desktop":
        return DesktopNotifier()
    return LogNotifier()
