"""Dhiway watch callback handling and forwarding."""

from __future__ import annotations

import asyncio
import logging

import httpx

from wallet_watcher.models.watch import CallbackAck, WatchCallback
from wallet_watcher.services.registry import WatcherRecord, WatcherRegistry, utcnow

logger = logging.getLogger(__name__)

# Payload fields relayed to the forward URL
_RELAYED_FIELDS = ("identifier", "recordPublicId", "type", "message", "status", "timestamp")


class CallbackRelay:
    """Correlate Dhiway callbacks with watcher records and forward them.

    The caller always gets a success acknowledgement for a well-formed
    payload: an unknown credential or a failing forward target must not make
    Dhiway retry the delivery.
    """

    def __init__(
        self,
        registry: WatcherRegistry,
        settle_delay_s: float = 7.0,
        forward_timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._registry = registry
        self._settle_delay_s = settle_delay_s
        self._forward_timeout_s = forward_timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._forward_timeout_s, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def handle_callback(self, payload: WatchCallback) -> CallbackAck:
        # Dhiway notifies before its own record is fully updated
        if self._settle_delay_s > 0:
            await asyncio.sleep(self._settle_delay_s)

        record = await self._resolve(payload)
        if record is None:
            logger.warning(
                "Unmatched watch callback: recordPublicId=%s identifier=%s type=%s",
                payload.recordPublicId,
                payload.identifier,
                payload.type,
            )
            await self._log_event(payload, None, matched=False)
            return CallbackAck(message="Callback received for unknown credential", matched=False)

        received_at = utcnow()
        await self._registry.touch_event(record.credential_public_id, received_at)

        forwarded = False
        if record.forward_url:
            forwarded = await self._forward(record, payload, received_at.isoformat())

        await self._log_event(payload, record.credential_public_id, matched=True, forwarded=forwarded)
        logger.info(
            "Processed watch callback for %s (type=%s, forwarded=%s)",
            record.credential_public_id,
            payload.type,
            forwarded,
        )
        return CallbackAck(message="Callback processed", matched=True, forwarded=forwarded)

    async def _resolve(self, payload: WatchCallback) -> WatcherRecord | None:
        if payload.recordPublicId:
            record = await self._registry.find(payload.recordPublicId)
            if record is not None:
                return record
        if payload.identifier:
            record = await self._registry.find_by_identifier(payload.identifier)
            if record is not None:
                return record
            return await self._registry.find(payload.identifier)
        return None

    async def _forward(self, record: WatcherRecord, payload: WatchCallback, received_at: str) -> bool:
        body = {"vcPublicId": record.credential_public_id}
        body.update({name: getattr(payload, name) for name in _RELAYED_FIELDS})
        body["watchStatus"] = record.watch_status.value
        body["receivedAt"] = received_at

        try:
            response = await self.client.post(record.forward_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Forwarding callback for %s to %s failed: %s",
                record.credential_public_id,
                record.forward_url,
                exc,
            )
            return False
        return True

    async def _log_event(
        self,
        payload: WatchCallback,
        public_id: str | None,
        *,
        matched: bool,
        forwarded: bool = False,
    ) -> None:
        await self._registry.record_event(
            public_id=public_id,
            record_public_id=payload.recordPublicId,
            identifier=payload.identifier,
            event_type=payload.type,
            status=payload.status,
            matched=matched,
            forwarded=forwarded,
        )
