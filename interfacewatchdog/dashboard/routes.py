"""FastAPI router for the watchdog status endpoint and the sample feed."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from interfacewatchdog.monitor.plugin import InterfaceWatchdogPlugin

logger = logging.getLogger("interfacewatchdog.dashboard.routes")

router = APIRouter(prefix="/plugins/interfacewatchdog", tags=["interfacewatchdog"])


def _plugin(request: Request) -> InterfaceWatchdogPlugin:
    plugin = getattr(request.app.state, "plugin", None)
    if plugin is None or not plugin.started:
        raise HTTPException(503, "service unavailable (try again later)")
    return plugin


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    logger.debug("processing %s request on %s", request.method, request.url.path)
    return JSONResponse(_plugin(request).status())


@router.get("/plugin")
async def get_plugin(request: Request) -> JSONResponse:
    plugin = _plugin(request)
    return JSONResponse({
        "id": plugin.id,
        "status": plugin.plugin_status,
        "error": plugin.plugin_error,
        "enabled": plugin.enabled,
        "heartbeat": plugin.registry.heartbeat,
        "restartScheduled": plugin.restart_scheduled,
    })


@router.post("/events")
async def post_event(request: Request) -> JSONResponse:
    """Accept one host server event, e.g. a SERVERSTATISTICS sample."""
    plugin = _plugin(request)
    try:
        event = await request.json()
    except ValueError:
        raise HTTPException(400, "bad request")
    if not isinstance(event, dict):
        raise HTTPException(400, "bad request")

    restarts = plugin.handle_event(event)
    return JSONResponse({
        "heartbeat": plugin.registry.heartbeat,
        "restarts": [r._asdict() for r in restarts],
    })
