"""Load interfacewatchdog configuration from config.yaml and set up logging."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("interfacewatchdog")

REPO_DIR = Path(__file__).resolve().parent.parent.parent
_DEFAULT_CONFIG_PATH = REPO_DIR / "config" / "config.yaml"

DEFAULTS: dict[str, Any] = {
    "data_dir": str(REPO_DIR / "data"),
    "log_dir": str(REPO_DIR / "logs"),
    "log_level": "INFO",
    "restart_delay": 1.0,
    "notifier": "log",
    "watchdogs": [],
}


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file, with env-var overrides.

    Environment variable overrides (if set):
        IFWATCHDOG_DATA_DIR   -> data_dir
        IFWATCHDOG_LOG_DIR    -> log_dir
        IFWATCHDOG_LOG_LEVEL  -> log_level
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as fh:
        loaded = yaml.safe_load(fh) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    cfg: dict[str, Any] = dict(DEFAULTS)
    cfg.update(loaded)

    _env_override(cfg, "IFWATCHDOG_DATA_DIR", "data_dir")
    _env_override(cfg, "IFWATCHDOG_LOG_DIR", "log_dir")
    _env_override(cfg, "IFWATCHDOG_LOG_LEVEL", "log_level")

    _validate(cfg)
    return cfg


def _env_override(cfg: dict, env_key: str, *keys: str) -> None:
    """Override a nested config value from an environment variable."""
    val = os.environ.get(env_key)
    if val is None:
        return
    target = cfg
    for k in keys[:-1]:
        target = target.setdefault(k, {})
    target[keys[-1]] = val


def _validate(cfg: dict[str, Any]) -> None:
    """Check the service-level settings.

    Individual watchdog entries are not validated here; the registry drops
    bad entries one by one so that a single typo never aborts startup.
    """
    if cfg.get("watchdogs") is None:
        cfg["watchdogs"] = []
    if not isinstance(cfg["watchdogs"], list):
        raise ValueError("'watchdogs' must be a list of watchdog specifications")

    try:
        cfg["restart_delay"] = float(cfg["restart_delay"])
    except (TypeError, ValueError):
        raise ValueError(f"'restart_delay' must be a number, got {cfg['restart_delay']!r}") from None

    if cfg["notifier"] not in ("log", "desktop"):
        logger.warning("Unknown notifier %r, falling back to 'log'", cfg["notifier"])
        cfg["notifier"] = "log"


def checkpoint_path(cfg: dict[str, Any]) -> Path:
    """Return the checkpoint file path inside the data directory, creating the directory."""
    data_dir = Path(cfg["data_dir"])
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "shadow-options.json"


def setup_logging(cfg: dict[str, Any]) -> None:
    """Configure package logging: stderr + rotating file."""
    log_dir = Path(cfg["log_dir"])
    log_dir.mkdir(parents=True, exist_ok=True)

    from logging.handlers import RotatingFileHandler

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root = logging.getLogger("interfacewatchdog")
    root.setLevel(getattr(logging, str(cfg.get("log_level", "INFO")).upper(), logging.INFO))

    # stderr
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    root.addHandler(sh)

    # rotating file
    fh = RotatingFileHandler(log_dir / "interfacewatchdog.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    root.addHandler(fh)
