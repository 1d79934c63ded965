#!/usr/bin/env python3
"""Interface watchdog service -- FastAPI app exposing status and the sample feed.

Run with:
    python3 -m interfacewatchdog.dashboard.app --config config/config.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from interfacewatchdog.common.config import checkpoint_path, load_config, setup_logging
from interfacewatchdog.common.state import CheckpointStore
from interfacewatchdog.dashboard.routes import router
from interfacewatchdog.monitor.plugin import InterfaceWatchdogPlugin

logger = logging.getLogger("interfacewatchdog.dashboard")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8766


def create_app(plugin: InterfaceWatchdogPlugin) -> FastAPI:
    """Build the app around ``plugin``; it is started and stopped with the app lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not plugin.started:
            plugin.start()
        yield
        plugin.stop()

    app = FastAPI(title="Interface Watchdog", version="1.0.0", lifespan=lifespan)
    app.state.plugin = plugin
    app.include_router(router)
    return app


def print_checkpoint(cfg: dict) -> None:
    checkpoint = CheckpointStore(checkpoint_path(cfg)).load()
    if not checkpoint.watchdogs:
        print("No watchdog checkpoint yet.")
        return
    print(f"Checkpoint created: {checkpoint.file_created}")
    for entry in checkpoint.watchdogs.values():
        restart = "-" if entry.restart_count is None else entry.restart_count
        print(
            f"  {entry.name}: problems since file creation={entry.problems_since_file_creation}, "
            f"last session={entry.problems_in_last_session}, restart={restart}"
        )


def main() -> None:
    parser = argparse.ArgumentParser(description="Interface Watchdog")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument(
        "--status", action="store_true",
        help="Print the saved checkpoint and exit",
    )
    parser.add_argument(
        "--dump-config", action="store_true",
        help="Print the effective configuration and exit",
    )
    args = parser.parse_args()

    cfg = load_config(args.config)

    if args.status:
        print_checkpoint(cfg)
        return
    if args.dump_config:
        print(json.dumps(cfg, indent=2, default=str))
        return

    setup_logging(cfg)

    import uvicorn

    app = create_app(InterfaceWatchdogPlugin(cfg))
    logger.info("Interface watchdog listening on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
