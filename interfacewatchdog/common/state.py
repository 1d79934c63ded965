"""Checkpoint of watchdog counters that must survive a deliberate restart.

The checkpoint is a flat JSON file rewritten in full on shutdown and before
every restart-triggering exit:

    {
      "fileCreated": "2026-10-17T09:12:44+00:00",
      "watchdogs": [
        {"name": "can0", "problemsInLastSession": 1,
         "problemsSinceFileCreation": 7, "restartCount": 2}
      ]
    }

``restartCount`` is omitted for watchdogs with no restart in progress.
Per-session counters and state history are never written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

logger = logging.getLogger("interfacewatchdog.state")


class CheckpointError(OSError):
    """The checkpoint could not be written."""


@dataclass
class CheckpointEntry:
    name: str
    problems_in_last_session: int = 0
    problems_since_file_creation: int = 0
    restart_count: int | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "problemsInLastSession": self.problems_in_last_session,
            "problemsSinceFileCreation": self.problems_since_file_creation,
        }
        if self.restart_count is not None:
            data["restartCount"] = self.restart_count
        return data


@dataclass
class Checkpoint:
    file_created: str = field(default_factory=lambda: _now())
    watchdogs: dict[str, CheckpointEntry] = field(default_factory=dict)

    def entry(self, name: str) -> CheckpointEntry | None:
        return self.watchdogs.get(name)

    def to_json(self) -> dict[str, Any]:
        return {
            "fileCreated": self.file_created,
            "watchdogs": [e.to_json() for e in self.watchdogs.values()],
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _count(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} is not a number: {value!r}")
    return int(value)


def parse_checkpoint(data: Any) -> Checkpoint:
    """Build a Checkpoint from decoded JSON, skipping malformed entries."""
    if not isinstance(data, dict):
        raise ValueError("checkpoint root is not an object")

    checkpoint = Checkpoint()
    if isinstance(data.get("fileCreated"), str):
        checkpoint.file_created = data["fileCreated"]

    for raw in data.get("watchdogs") or []:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            logger.warning("Ignoring checkpoint entry without a name: %r", raw)
            continue
        try:
            checkpoint.watchdogs[raw["name"]] = CheckpointEntry(
                name=raw["name"],
                problems_in_last_session=_count(raw, "problemsInLastSession") or 0,
                problems_since_file_creation=_count(raw, "problemsSinceFileCreation") or 0,
                restart_count=_count(raw, "restartCount"),
            )
        except ValueError as exc:
            logger.warning("Ignoring checkpoint entry %r: %s", raw["name"], exc)
    return checkpoint


class CheckpointStore:
    """Load and atomically rewrite the checkpoint file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._file_created: str | None = None

    def load(self) -> Checkpoint:
        """Return the stored checkpoint, or an empty one if missing or unreadable."""
        if not self.path.is_file():
            checkpoint = Checkpoint()
        else:
            try:
                with open(self.path, encoding="utf-8") as fh:
                    checkpoint = parse_checkpoint(json.load(fh))
                logger.info(
                    "Recovered checkpoint for %d watchdog(s) from %s",
                    len(checkpoint.watchdogs), self.path,
                )
            except (json.JSONDecodeError, OSError, ValueError) as exc:
                logger.warning("Corrupt checkpoint file %s, resetting: %s", self.path, exc)
                checkpoint = Checkpoint()
        self._file_created = checkpoint.file_created
        return checkpoint

    def save(self, watchdogs: Iterable[Any]) -> Checkpoint:
        """Replace the checkpoint with the restart-relevant counters of ``watchdogs``.

        Raises CheckpointError if the file cannot be written.
        """
        checkpoint = Checkpoint(file_created=self._file_created or _now())
        for w in watchdogs:
            checkpoint.watchdogs[w.name] = CheckpointEntry(
                name=w.name,
                problems_in_last_session=w.problems_since_last_restart,
                problems_since_file_creation=w.problems_since_file_creation,
                restart_count=w.restart_count,
            )

        tmp = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(checkpoint.to_json(), fh, indent=2)
            tmp.replace(self.path)
        except (OSError, TypeError, ValueError) as exc:
            raise CheckpointError(f"Cannot write checkpoint {self.path}: {exc}") from exc

        self._file_created = checkpoint.file_created
        logger.debug("Saved checkpoint for %d watchdog(s) to %s", len(checkpoint.watchdogs), self.path)
        return checkpoint
