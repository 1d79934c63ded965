"""Host-facing plugin: lifecycle, server-event decoding and restart execution.

The plugin owns one ``WatchdogRegistry``.  It feeds it from host
``SERVERSTATISTICS`` events, reports a one-line plugin status / error the
way a host dashboard expects, and carries out restart requests: the
checkpoint is written first and the process is ended shortly afterwards so
pending notifications can flush.  If the checkpoint cannot be written the
restart is abandoned and the operator is alerted instead.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from typing import Any, Callable, Iterable, Mapping

from interfacewatchdog.common.config import checkpoint_path
from interfacewatchdog.common.state import CheckpointError, CheckpointStore
from interfacewatchdog.monitor.notify import Notifier, deliver, make_notifier
from interfacewatchdog.monitor.registry import PLUGIN_ID, WatchdogRegistry
from interfacewatchdog.monitor.watchdog import RestartRequested, State

logger = logging.getLogger("interfacewatchdog.plugin")

PLUGIN_NAME = "interfacewatchdog"
PLUGIN_DESCRIPTION = "Monitor data interfaces for anomalous drops in activity"

STATISTICS_EVENT = "SERVERSTATISTICS"


def _terminate() -> None:
    logger.info("Exiting for restart")
    os.kill(os.getpid(), signal.SIGTERM)


def extract_throughputs(event: Mapping[str, Any], interfaces: Iterable[str]) -> dict[str, float]:
    """Pick the delta rate of each monitored interface out of a statistics event."""
    data = event.get("data")
    stats = data.get("providerStatistics") if isinstance(data, Mapping) else None
    if not isinstance(stats, Mapping):
        return {}

    throughputs: dict[str, float] = {}
    for name in interfaces:
        provider = stats.get(name)
        if not isinstance(provider, Mapping):
            continue
        rate = provider.get("deltaRate")
        if isinstance(rate, (int, float)) and not isinstance(rate, bool):
            throughputs[name] = rate
    return throughputs


class InterfaceWatchdogPlugin:
    id = PLUGIN_ID
    name = PLUGIN_NAME
    description = PLUGIN_DESCRIPTION

    def __init__(
        self,
        cfg: dict[str, Any],
        notifier: Notifier | None = None,
        store: CheckpointStore | None = None,
        exit_fn: Callable[[], None] | None = None,
    ) -> None:
        self.cfg = cfg
        self.notifier = notifier or make_notifier(cfg)
        self.store = store or CheckpointStore(checkpoint_path(cfg))
        self.restart_delay = float(cfg.get("restart_delay", 1.0))
        self._exit_fn = exit_fn or _terminate
        self._restart_timer: threading.Timer | None = None
        self.registry: WatchdogRegistry | None = None
        self.plugin_status = ""
        self.plugin_error = ""

    @property
    def started(self) -> bool:
        return self.registry is not None

    @property
    def enabled(self) -> bool:
        return self.registry is not None and self.registry.enabled

    @property
    def restart_scheduled(self) -> bool:
        return self._restart_timer is not None

    def start(self, options: Mapping[str, Any] | None = None) -> None:
        if options is None:
            options = {"watchdogs": self.cfg.get("watchdogs", [])}
        entries = options.get("watchdogs")
        if not isinstance(entries, list):
            logger.warning("Ignoring 'watchdogs' option: not a list")
            entries = []

        checkpoint = self.store.load()
        self.registry = WatchdogRegistry.from_config(entries, checkpoint, self.notifier, plugin_id=self.id)
        logger.debug("using configuration: %s", self.registry.status())

        if not self.registry.enabled:
            self._set_error("stopped: no watchdogs are configured")
            return

        self.registry.start()
        interfaces = self.registry.interfaces()
        self._set_status(
            f"watching interface{'' if len(interfaces) == 1 else 's'} {', '.join(interfaces)}"
        )

    def stop(self) -> None:
        if self.registry is None:
            return
        try:
            self.store.save(self.registry.current_watchdogs())
        except CheckpointError as exc:
            logger.error("Failed to save checkpoint on shutdown: %s", exc)

    def handle_event(self, event: Any) -> list[RestartRequested]:
        """Process one host server event; returns the restarts it requested."""
        if not self.enabled or not isinstance(event, Mapping):
            return []
        if event.get("type") != STATISTICS_EVENT:
            return []

        throughputs = extract_throughputs(event, self.registry.interfaces())
        restarts: list[RestartRequested] = []
        for result in self.registry.on_sample(throughputs):
            if State.SUSPENDED in result.transitions:
                self._set_error(f"{result.name} on {result.interface}: suspending watchdog")
            if State.STOPPED in result.transitions:
                self._set_error(f"{result.name} on {result.interface}: terminating watchdog")
            if result.restart is not None:
                restarts.append(result.restart)

        if restarts:
            self._commit_restart(restarts)
        return restarts

    def status(self) -> dict[str, dict[str, Any]]:
        return self.registry.status() if self.registry is not None else {}

    def _commit_restart(self, restarts: list[RestartRequested]) -> None:
        if self._restart_timer is not None:
            # The pending exit already restarts the server; these attempts are not counted.
            for request in restarts:
                logger.info("Restart already scheduled, ignoring request from %s", request.name)
                watchdog = self.registry.get(request.name)
                if watchdog is not None:
                    watchdog.withdraw_restart(request)
            return

        try:
            self.store.save(self.registry.current_watchdogs())
        except CheckpointError as exc:
            logger.error("Restart aborted, checkpoint not written: %s", exc)
            self._set_error("restart aborted: could not persist watchdog checkpoint")
            for request in restarts:
                watchdog = self.registry.get(request.name)
                if watchdog is None:
                    continue
                result = watchdog.abort_restart(request, self.registry.heartbeat)
                for notification in result.notifications:
                    deliver(self.notifier, notification)
            return

        logger.warning(
            "Restarting in %.1fs (requested by %s)",
            self.restart_delay, ", ".join(r.name for r in restarts),
        )
        timer = threading.Timer(self.restart_delay, self._exit_fn)
        timer.daemon = True
        self._restart_timer = timer
        timer.start()

    def _set_status(self, message: str) -> None:
        self.plugin_status = message
        logger.info(message)

    def _set_error(self, message: str) -> None:
        self.plugin_error = message
        logger.error(message)
