"""Health and readiness endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from wallet_watcher.models.health import HealthResponse, ReadyResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    engine = request.app.state.engine
    registry = request.app.state.registry

    status = "ok"
    unmatched = 0
    if not registry.is_open:
        status = "degraded"
    else:
        unmatched = await registry.unmatched_count()
        if engine.last_result is not None and engine.last_result.errors and not engine.last_result.watchers_added:
            status = "degraded"

    return HealthResponse(
        status=status,
        version=request.app.state.version,
        uptime=int(time.monotonic() - request.app.state.started_at),
        lastReconcile=engine.last_run_at,
        unmatchedCallbacks=unmatched,
    )


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    registry = request.app.state.registry

    if not registry.is_open:
        body = ReadyResponse(ready=False, reason="watcher registry is not open")
        return JSONResponse(status_code=503, content=body.model_dump())

    return JSONResponse(status_code=200, content=ReadyResponse(ready=True).model_dump())
