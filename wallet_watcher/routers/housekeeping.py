"""Watcher statistics and manual reconciliation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends

from wallet_watcher.dependencies import get_engine, get_principal, get_registry
from wallet_watcher.models.housekeeping import (
    DEFAULT_CHUNK_SIZE,
    AddWatchersRequest,
    AddWatchersResponse,
    ImportCredentialsRequest,
    ImportCredentialsResponse,
    ImportSummary,
    ReconcileSummary,
    WatcherStats,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/housekeeping", tags=["housekeeping"])


@router.get("/stats", response_model=WatcherStats)
async def get_stats(registry=Depends(get_registry)) -> WatcherStats:
    return await registry.stats()


@router.post("/add-watchers", response_model=AddWatchersResponse)
async def add_watchers(
    body: AddWatchersRequest | None = Body(default=None),
    engine=Depends(get_engine),
) -> AddWatchersResponse:
    chunk_size = body.chunkSize if body and body.chunkSize is not None else DEFAULT_CHUNK_SIZE
    result = await engine.reconcile(chunk_size)

    if result.errors:
        message = f"Processed {result.total_processed} VC(s) with {result.errors} error(s)"
    elif result.total_processed:
        message = "Watchers added successfully"
    else:
        message = "No VCs without watchers found"

    return AddWatchersResponse(
        success=True,
        message=message,
        data=ReconcileSummary(
            totalProcessed=result.total_processed,
            watchersAdded=result.watchers_added,
            errors=result.errors,
        ),
    )


@router.post("/credentials", response_model=ImportCredentialsResponse, status_code=201)
async def import_credentials(
    body: ImportCredentialsRequest,
    registry=Depends(get_registry),
    principal=Depends(get_principal),
) -> ImportCredentialsResponse:
    """Track issued credentials so the next reconciliation pass watches them."""
    added = await registry.add_credentials(
        [(item.vcPublicId, item.identifier, item.userId) for item in body.credentials]
    )
    logger.info(
        "Imported %d credential(s) (%d new) for %s",
        len(body.credentials),
        added,
        principal.subject,
    )
    return ImportCredentialsResponse(
        success=True,
        message=f"{added} new credential(s) tracked",
        data=ImportSummary(received=len(body.credentials), added=added),
    )
