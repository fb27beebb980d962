"""VC watch registration and Dhiway callback endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from wallet_watcher.dependencies import get_engine, get_principal, get_relay
from wallet_watcher.models.error import ErrorResponse
from wallet_watcher.models.watch import CallbackAck, WatchCallback, WatchVcData, WatchVcRequest, WatchVcResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.post(
    "/vcs/watch",
    response_model=WatchVcResponse,
    responses={502: {"model": ErrorResponse, "description": "Dhiway did not confirm the watch"}},
)
async def watch_vc(
    body: WatchVcRequest,
    engine=Depends(get_engine),
    principal=Depends(get_principal),
) -> WatchVcResponse:
    logger.info("Watch requested for %s by %s", body.vcPublicId, principal.subject)
    record = await engine.watch(
        body.vcPublicId,
        identifier=body.identifier,
        callback_url=body.callbackUrl,
        forward_url=body.forwardWatcherCallbackUrl,
        email=body.email,
    )
    return WatchVcResponse(
        success=True,
        message="VC watch registered successfully",
        data=WatchVcData(vcPublicId=record.credential_public_id, watchStatus=record.watch_status.value),
    )


@router.post("/vcs/watch/callback", response_model=CallbackAck)
async def watch_callback(body: WatchCallback, relay=Depends(get_relay)) -> CallbackAck:
    return await relay.handle_callback(body)
