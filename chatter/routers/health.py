"""Health check endpoint -- no auth required."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()

_start_time = time.monotonic()


@router.get("")
async def health_check(request: Request):
    """Return database status and realtime gateway counters."""
    uptime = time.monotonic() - _start_time

    db_status = "ok"
    try:
        db = request.app.state.db
        await db.execute("SELECT 1")
    except Exception:
        db_status = "error"

    gateway = getattr(request.app.state, "gateway", None)
    realtime = gateway.stats() if gateway is not None else {"running": False}
    realtime_status = "ok" if realtime["running"] else "error"

    return {
        "status": "ok" if db_status == "ok" and realtime_status == "ok" else "degraded",
        "uptime_seconds": round(uptime, 1),
        "database": db_status,
        "realtime": realtime,
        "version": "1.0.0",
    }
