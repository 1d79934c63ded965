"""Per-interface throughput watchdog and its state machine.

One ``Watchdog`` is bound to one monitored interface.  Every sampling
event advances it by exactly one tick:

  starting -> normal | problem
  normal <-> problem (via a one-tick newly-normal staging state)
  problem -> suspend -> suspended   (terminal, frozen)
  problem -> stop -> stopped        (terminal, leaves the active set)

Transient states (newly-normal, suspend, stop) are resolved inside the
tick that enters them, so each transition notifies exactly once.  The
watchdog never exits the process itself: a restart-server action is
returned to the caller as a ``RestartRequested``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple

from interfacewatchdog.monitor.notify import Notification

logger = logging.getLogger("interfacewatchdog.watchdog")


class State(str, Enum):
    STARTING = "starting"
    NORMAL = "normal"
    NEWLY_NORMAL = "newly-normal"
    PROBLEM = "problem"
    SUSPEND = "suspend"
    SUSPENDED = "suspended"
    STOP = "stop"
    STOPPED = "stopped"


class Action(str, Enum):
    NONE = "none"
    RESTART_SERVER = "restart-server"
    SUSPEND_WATCHDOG = "suspend-watchdog"
    STOP_WATCHDOG = "stop-watchdog"


TERMINAL_STATES = frozenset({State.SUSPENDED, State.STOPPED})
STOPPING_STATES = frozenset({State.STOP, State.STOPPED})


class StateChange(NamedTuple):
    timestamp: datetime
    heartbeat: int
    exception_count: int
    state: State

    def __str__(self) -> str:
        return f"{self.timestamp:%Y-%m-%dT%H:%M:%S} {self.heartbeat} {self.exception_count} {self.state.value}"


class RestartRequested(NamedTuple):
    name: str
    interface: str
    attempt: int
    limit: int


@dataclass
class TickResult:
    """What one tick of one watchdog produced."""

    name: str
    interface: str
    notifications: list[Notification] = field(default_factory=list)
    transitions: list[State] = field(default_factory=list)
    restart: RestartRequested | None = None


@dataclass
class Watchdog:
    name: str
    interface: str
    threshold: float = 0
    start_action_threshold: int = 3
    stop_action_threshold: int = 6
    action: Action = Action.NONE
    notification_path: str = ""

    state: State = State.STARTING
    state_history: list[StateChange] = field(default_factory=list)

    exception_count: int = 0
    problem_count: int = 0
    # None means no restart sequence is in progress.
    restart_count: int | None = None
    problems_since_last_restart: int = 0
    problems_since_file_creation: int = 0

    @property
    def restart_limit(self) -> int:
        return self.stop_action_threshold - self.start_action_threshold

    @property
    def restart_in_progress(self) -> bool:
        return self.restart_count is not None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def change_state(self, state: State, heartbeat: int) -> None:
        self.state = state
        self.state_history.append(
            StateChange(datetime.now(timezone.utc), heartbeat, self.exception_count, state)
        )
        logger.debug("%s on %s: state -> %s", self.name, self.interface, state.value)

    def begin(self, heartbeat: int = 0) -> Notification:
        """Enter ``starting`` and return the waiting-for-activity notification."""
        self.change_state(State.STARTING, heartbeat)
        logger.debug("waiting for %s on %s to become active", self.name, self.interface)
        return self._notification("alert", "Waiting for interface to become active")

    def tick(self, throughput: float, heartbeat: int) -> TickResult:
        """Advance the watchdog by one sample of ``throughput`` for its interface."""
        result = TickResult(self.name, self.interface)
        if self.is_terminal:
            return result

        if throughput <= self.threshold:
            self.exception_count += 1
            if (
                self.exception_count == self.start_action_threshold
                and self.state not in STOPPING_STATES
                and self.state is not State.PROBLEM
            ):
                self._enter(State.PROBLEM, heartbeat, result)
        else:
            self.exception_count = 0
            if self.state is not State.NORMAL:
                self._enter(State.NEWLY_NORMAL, heartbeat, result)

        if self.state is State.NEWLY_NORMAL:
            logger.info("%s on %s: throughput moved above threshold", self.name, self.interface)
            result.notifications.append(
                self._notification("normal", f"Throughput on {self.interface} moved above threshold.")
            )
            self.restart_count = None
            self._enter(State.NORMAL, heartbeat, result)
        elif self.state is State.PROBLEM:
            self._on_problem(heartbeat, result)

        # A problem tick may have started a suspend or stop sequence.
        if self.state is State.SUSPEND:
            logger.warning("%s on %s: suspending watchdog", self.name, self.interface)
            result.notifications.append(
                self._notification(
                    "warn",
                    f"Suspending watchdog on {self.interface} until it is reconfigured.",
                )
            )
            self._enter(State.SUSPENDED, heartbeat, result)
        elif self.state is State.STOP:
            logger.warning("%s on %s: terminating watchdog", self.name, self.interface)
            result.notifications.append(self._notification("warn", f"Terminating watchdog on {self.interface}"))
            self.restart_count = None
            self._enter(State.STOPPED, heartbeat, result)

        return result

    def withdraw_restart(self, request: RestartRequested) -> None:
        """Give back the restart attempt counted for ``request``.

        Used when the requested restart will not be carried out on its
        behalf, so the attempt is not persisted or charged to the limit.
        """
        if self.restart_count == request.attempt:
            self.restart_count = request.attempt - 1 or None

    def abort_restart(self, request: RestartRequested, heartbeat: int) -> TickResult:
        """End the restart sequence after ``request`` could not be carried out.

        The attempt is withdrawn and the watchdog is suspended, so it does
        not request (and fail) again on every following problem tick.
        """
        result = TickResult(self.name, self.interface)
        if self.is_terminal:
            return result
        self.withdraw_restart(request)
        self._enter(State.SUSPEND, heartbeat, result)
        logger.error("%s on %s: restart aborted, suspending watchdog", self.name, self.interface)
        result.notifications.append(
            self._notification("alarm", "Restart aborted: could not persist watchdog checkpoint")
        )
        self._enter(State.SUSPENDED, heartbeat, result)
        return result

    def _on_problem(self, heartbeat: int, result: TickResult) -> None:
        self.problem_count += 1
        self.problems_since_last_restart += 1
        self.problems_since_file_creation += 1

        if self.action is Action.RESTART_SERVER:
            if self.restart_count is None or self.restart_count < self.restart_limit:
                self.restart_count = (self.restart_count or 0) + 1
                logger.warning(
                    "%s on %s: throughput persistently below threshold: triggering restart %d of %d",
                    self.name, self.interface, self.restart_count, self.restart_limit,
                )
                result.notifications.append(
                    self._notification(
                        "alarm",
                        f"Throughput on {self.interface} persistently below threshold: "
                        f"triggering restart {self.restart_count} of {self.restart_limit}",
                    )
                )
                result.restart = RestartRequested(
                    self.name, self.interface, self.restart_count, self.restart_limit,
                )
            else:
                self._enter(State.SUSPEND, heartbeat, result)
        elif self.action is Action.STOP_WATCHDOG:
            self._enter(State.STOP, heartbeat, result)
        elif self.action is Action.SUSPEND_WATCHDOG:
            self._enter(State.SUSPEND, heartbeat, result)

    def _enter(self, state: State, heartbeat: int, result: TickResult) -> None:
        self.change_state(state, heartbeat)
        result.transitions.append(state)

    def _notification(self, state: str, message: str) -> Notification:
        return Notification(self.notification_path, state, message)
