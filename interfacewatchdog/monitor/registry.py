"""Build and hold the set of configured watchdogs.

Configuration entries are merged field by field with the checkpoint
recovered from the previous session:

    configured field  = user value   ?? schema default
    persisted counter = checkpoint   ?? zero / no restart
    session counter   = always fresh

Bad entries are dropped with a warning; startup always continues.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from interfacewatchdog.common.state import Checkpoint, CheckpointEntry
from interfacewatchdog.monitor.notify import LogNotifier, Notifier, deliver
from interfacewatchdog.monitor.watchdog import Action, State, TickResult, Watchdog

logger = logging.getLogger("interfacewatchdog.registry")

PLUGIN_ID = "interfacewatchdog"

DEFAULT_THRESHOLD = 0
DEFAULT_START_ACTION_THRESHOLD = 3
DEFAULT_STOP_ACTION_THRESHOLD_OFFSET = 3
DEFAULT_ACTION = Action.NONE.value


class ConfigError(ValueError):
    """A watchdog configuration entry is unusable."""


def resolve(*candidates: Any, default: Any = None) -> Any:
    """Return the first candidate that is set, else ``default``."""
    for value in candidates:
        if value is not None:
            return value
    return default


def _number(entry: Mapping[str, Any], key: str) -> float | None:
    value = entry.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"property '{key}' must be a number")
    return value


def _text(entry: Mapping[str, Any], key: str) -> str | None:
    value = entry.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ConfigError(f"property '{key}' must be a string")
    return value


def build_watchdog(
    entry: Mapping[str, Any],
    default_name: str | None,
    saved: CheckpointEntry | None = None,
    plugin_id: str = PLUGIN_ID,
) -> Watchdog:
    """Create one watchdog from a user entry and its checkpoint, if any."""
    interface = _text(entry, "interface")
    if interface is None:
        raise ConfigError("required property 'interface' is missing")
    name = resolve(_text(entry, "name"), default=default_name)

    action = resolve(_text(entry, "action"), default=DEFAULT_ACTION)
    try:
        action = Action(action)
    except ValueError:
        raise ConfigError(f"property 'action' is invalid ({action!r})") from None

    start = resolve(_number(entry, "startActionThreshold"), default=DEFAULT_START_ACTION_THRESHOLD)
    if start != int(start) or start <= 0:
        raise ConfigError("startActionThreshold must be a positive whole number")
    start = int(start)

    stop = _number(entry, "stopActionThreshold")
    if stop is None or stop != int(stop) or stop <= 0 or stop < start:
        if stop is not None:
            logger.warning(
                "%s: stopActionThreshold %s is invalid, using %d",
                name, stop, start + DEFAULT_STOP_ACTION_THRESHOLD_OFFSET,
            )
        stop = start + DEFAULT_STOP_ACTION_THRESHOLD_OFFSET

    return Watchdog(
        name=name,
        interface=interface,
        threshold=resolve(_number(entry, "threshold"), default=DEFAULT_THRESHOLD),
        start_action_threshold=start,
        stop_action_threshold=int(stop),
        action=action,
        notification_path=resolve(
            _text(entry, "notificationPath"),
            default=f"notifications.plugins.{plugin_id}.watchdogs.{name}",
        ),
        problems_since_file_creation=resolve(
            saved.problems_since_file_creation if saved else None, default=0,
        ),
        restart_count=saved.restart_count if saved else None,
    )


def build_watchdogs(
    entries: Iterable[Any],
    checkpoint: Checkpoint | None = None,
    plugin_id: str = PLUGIN_ID,
) -> list[Watchdog]:
    """Turn raw configuration entries into watchdogs, dropping invalid ones."""
    checkpoint = checkpoint or Checkpoint()
    ordinals: dict[str, int] = {}
    watchdogs: list[Watchdog] = []
    names: set[str] = set()

    for entry in entries:
        label = entry.get("name") if isinstance(entry, Mapping) else None
        if not isinstance(label, str):
            label = None
        try:
            if not isinstance(entry, Mapping):
                raise ConfigError("entry is not a mapping")
            default_name = None
            if not entry.get("name") and isinstance(entry.get("interface"), str) and entry["interface"]:
                ordinal = ordinals.get(entry["interface"], 0)
                # Skip ordinals whose name an earlier entry already took explicitly.
                while f"{entry['interface']}-{ordinal}" in names:
                    ordinal += 1
                ordinals[entry["interface"]] = ordinal + 1
                default_name = f"{entry['interface']}-{ordinal}"
            label = label or default_name
            if label in names:
                raise ConfigError(f"duplicate watchdog name '{label}'")

            watchdog = build_watchdog(entry, default_name, checkpoint.entry(label or ""), plugin_id)
        except ConfigError as exc:
            logger.warning("dropping watchdog '%s' (%s)", label, exc)
            continue

        names.add(watchdog.name)
        watchdogs.append(watchdog)

    return watchdogs


class WatchdogRegistry:
    """The authoritative list of watchdogs and the sampling entry point."""

    def __init__(self, watchdogs: Iterable[Watchdog], notifier: Notifier | None = None) -> None:
        self._watchdogs = list(watchdogs)
        self._active = list(self._watchdogs)
        self.notifier = notifier or LogNotifier()
        self.heartbeat = 0

    @classmethod
    def from_config(
        cls,
        entries: Iterable[Any],
        checkpoint: Checkpoint | None = None,
        notifier: Notifier | None = None,
        plugin_id: str = PLUGIN_ID,
    ) -> WatchdogRegistry:
        return cls(build_watchdogs(entries, checkpoint, plugin_id), notifier)

    @property
    def enabled(self) -> bool:
        return bool(self._watchdogs)

    @property
    def active(self) -> list[Watchdog]:
        return list(self._active)

    def current_watchdogs(self) -> list[Watchdog]:
        return list(self._watchdogs)

    def get(self, name: str) -> Watchdog | None:
        for watchdog in self._watchdogs:
            if watchdog.name == name:
                return watchdog
        return None

    def interfaces(self) -> list[str]:
        return sorted({w.interface for w in self._watchdogs})

    def start(self) -> None:
        """Put every watchdog in ``starting`` and announce it."""
        for watchdog in self._watchdogs:
            deliver(self.notifier, watchdog.begin(self.heartbeat))

    def on_sample(self, throughputs: Mapping[str, Any]) -> list[TickResult]:
        """Advance every active watchdog by exactly one tick.

        Interfaces missing from ``throughputs`` count as zero throughput.
        """
        self.heartbeat += 1
        results: list[TickResult] = []

        for watchdog in reversed(list(self._active)):
            throughput = throughputs.get(watchdog.interface)
            if isinstance(throughput, bool) or not isinstance(throughput, (int, float)):
                throughput = 0
            result = watchdog.tick(throughput, self.heartbeat)
            for notification in result.notifications:
                deliver(self.notifier, notification)
            if watchdog.state is State.STOPPED:
                self._active.remove(watchdog)
            results.append(result)

        return results

    def status(self) -> dict[str, dict[str, Any]]:
        return {
            w.name: {
                "interface": w.interface,
                "threshold": w.threshold,
                "action": w.action.value,
                "currentState": w.state.value,
                "exceptionRate": f"{w.exception_count} / {self.heartbeat}",
                "restartCount": w.restart_count,
                "problemsSinceFileCreation": w.problems_since_file_creation,
                "stateHistory": [str(change) for change in w.state_history],
            }
            for w in self._watchdogs
        }
