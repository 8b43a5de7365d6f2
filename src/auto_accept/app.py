"""FastAPI application: status surface and command routes for the host UI."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import webbrowser
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from .config import HOST, LOG_DIR, LOG_FILE, LOG_RETENTION_DAYS, OPEN_STATUS_PAGE, PORT, ensure_dirs
from .context import CoordinationContext
from .coordinator import Coordinator
from .driver import CDPDriver
from .events import EventType
from .exceptions import ProFeatureRequired
from .license import LicenseVerifier
from .models import BackgroundRequest, BannedCommandsRequest, CadenceRequest, FocusRequest
from .native import detect_ide
from .storage import SQLiteKV

logger = logging.getLogger(__name__)

# Singleton, initialized at startup
_coordinator: Coordinator | None = None


def _list_log_files() -> list[Path]:
    ensure_dirs()
    files = [p for p in LOG_DIR.glob("coordinator.log*") if p.is_file()]
    return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)


def _cleanup_old_logs() -> None:
    cutoff_ts = (datetime.now() - timedelta(days=LOG_RETENTION_DAYS)).timestamp()
    for path in _list_log_files():
        if path.stat().st_mtime < cutoff_ts:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Failed to delete old log file: %s", path)


def _configure_logging() -> None:
    ensure_dirs()
    _cleanup_old_logs()
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    file_handler = TimedRotatingFileHandler(
        filename=str(LOG_FILE),
        when="midnight",
        interval=1,
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    logging.basicConfig(level=logging.INFO, handlers=[stream_handler, file_handler], force=True)


def build_coordinator(app_name: str | None = None) -> Coordinator:
    ctx = CoordinationContext(kv=SQLiteKV(), ide=detect_ide(app_name or os.getenv("AUTO_ACCEPT_IDE")))
    return Coordinator(ctx, CDPDriver(), LicenseVerifier())


def set_coordinator(coordinator: Coordinator | None) -> None:
    global _coordinator
    _coordinator = coordinator


def _get_coordinator() -> Coordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = build_coordinator()
    return _coordinator


@asynccontextmanager
async def lifespan(app: FastAPI):
    coordinator = _get_coordinator()
    await coordinator.startup()
    try:
        yield
    finally:
        await coordinator.shutdown()


app = FastAPI(title="Auto Accept Coordinator", version="0.1.0", lifespan=lifespan)


@app.exception_handler(ProFeatureRequired)
async def _pro_required(request: Request, exc: ProFeatureRequired):
    return JSONResponse({"error": str(exc), "feature": exc.feature}, status_code=403)


# ── Status ────────────────────────────────────────────────────────────────

@app.get("/api/status")
async def status():
    return _get_coordinator().status().model_dump(mode="json")


@app.get("/api/status/stream")
async def status_stream(request: Request):
    """SSE endpoint pushing a status record after every state change."""
    coordinator = _get_coordinator()
    queue: asyncio.Queue = asyncio.Queue(maxsize=32)

    def on_status(payload: dict) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(payload)

    async def event_generator():
        coordinator.ctx.bus.subscribe(EventType.status_changed, on_status)
        try:
            yield {"event": "status", "data": json.dumps(coordinator.status().model_dump(mode="json"))}
            while True:
                if await request.is_disconnected():
                    break
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=15)
                except asyncio.TimeoutError:
                    yield {"event": "ping", "data": "{}"}
                    continue
                yield {"event": "status", "data": json.dumps(payload)}
        finally:
            coordinator.ctx.bus.unsubscribe(EventType.status_changed, on_status)

    return EventSourceResponse(event_generator())


# ── Commands ──────────────────────────────────────────────────────────────

@app.post("/api/enable")
async def enable():
    return (await _get_coordinator().enable()).model_dump(mode="json")


@app.post("/api/disable")
async def disable():
    return (await _get_coordinator().disable()).model_dump(mode="json")


@app.post("/api/toggle")
async def toggle():
    return (await _get_coordinator().toggle()).model_dump(mode="json")


@app.put("/api/settings/cadence")
async def set_cadence(req: CadenceRequest):
    return (await _get_coordinator().set_cadence(req.cadence_ms)).model_dump(mode="json")


@app.post("/api/background/toggle")
async def toggle_background():
    coordinator = _get_coordinator()
    result = await coordinator.toggle_background()
    return {"result": result.value, "status": coordinator.status().model_dump(mode="json")}


@app.put("/api/background")
async def set_background(req: BackgroundRequest):
    coordinator = _get_coordinator()
    result = await coordinator.request_background(req.on)
    return {"result": result.value, "status": coordinator.status().model_dump(mode="json")}


@app.get("/api/settings/banned-commands")
async def get_banned_commands():
    return {"patterns": _get_coordinator().ctx.banned_commands}


@app.put("/api/settings/banned-commands")
async def set_banned_commands(req: BannedCommandsRequest):
    patterns = await _get_coordinator().set_banned_patterns(req.patterns)
    return {"patterns": patterns}


@app.post("/api/focus")
async def focus(req: FocusRequest):
    count = await _get_coordinator().set_focus(req.focused)
    return {"away_actions": count}


# ── License ───────────────────────────────────────────────────────────────

@app.post("/api/license/reverify")
async def reverify():
    return (await _get_coordinator().force_reverify()).model_dump(mode="json")


@app.post("/api/license/activate")
async def activate():
    coordinator = _get_coordinator()
    outcome = await coordinator.activate_pro()
    return {
        "activated": outcome is not None,
        "polling": coordinator.entitlement.retry.is_active,
    }


@app.post("/api/license/cancel")
async def cancel_subscription():
    ok = await _get_coordinator().cancel_subscription()
    if not ok:
        return JSONResponse({"error": "Cancellation failed"}, status_code=502)
    return {"status": "ok"}


# ── Entrypoint ────────────────────────────────────────────────────────────

def main():
    """CLI entrypoint: start the coordinator service."""
    _configure_logging()
    logger.info("Starting Auto Accept Coordinator at http://%s:%d", HOST, PORT)
    if OPEN_STATUS_PAGE:
        webbrowser.open(f"http://{HOST}:{PORT}/api/status")
    uvicorn.run(app, host=HOST, port=PORT, log_level="info", log_config=None)
