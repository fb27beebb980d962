"""Register Dhiway watchers for credentials that have none."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from wallet_watcher.exceptions import RemoteWatchError, ValidationError
from wallet_watcher.models.housekeeping import DEFAULT_CHUNK_SIZE
from wallet_watcher.services.dhiway import DhiwayWatchClient
from wallet_watcher.services.locks import KeyedLock
from wallet_watcher.services.registry import WatcherRecord, WatcherRegistry, WatchStatus, utcnow

logger = logging.getLogger(__name__)


class _Outcome(Enum):
    ADDED = "added"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ReconcileResult:
    total_processed: int = 0
    watchers_added: int = 0
    errors: int = 0


class ReconciliationEngine:
    """Finds credentials without a live watcher and registers one for each.

    Registrations for the same credential id are serialized through a
    :class:`KeyedLock`, shared with explicit watch requests, so Dhiway never
    sees two concurrent registrations for one credential.
    """

    def __init__(
        self,
        registry: WatcherRegistry,
        client: DhiwayWatchClient,
        default_callback_url: str,
        concurrency: int = 4,
        locks: KeyedLock | None = None,
    ):
        self._registry = registry
        self._client = client
        self._default_callback_url = default_callback_url
        self._concurrency = max(1, concurrency)
        self._locks = locks or KeyedLock()
        self.last_run_at: datetime | None = None
        self.last_result: ReconcileResult | None = None

    async def reconcile(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ReconcileResult:
        """Run one bounded reconciliation pass.

        FAILED watchers are picked up again on the next pass; there is no
        retry inside a pass.
        """
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ValidationError(
                "chunkSize must be a positive integer",
                details={"chunkSize": str(chunk_size)},
            )

        candidates = await self._registry.find_unwatched(chunk_size)
        sem = asyncio.Semaphore(self._concurrency)

        async def _bounded(public_id: str) -> _Outcome:
            async with sem:
                return await self._attempt(public_id)

        outcomes = await asyncio.gather(*(_bounded(pid) for pid in candidates))

        result = ReconcileResult()
        for outcome in outcomes:
            if outcome is _Outcome.ADDED:
                result.watchers_added += 1
            elif outcome is _Outcome.FAILED:
                result.errors += 1
        result.total_processed = result.watchers_added + result.errors

        self.last_run_at = utcnow()
        self.last_result = result
        logger.info(
            "Reconciliation finished: %d candidate(s), %d processed, %d added, %d error(s)",
            len(candidates),
            result.total_processed,
            result.watchers_added,
            result.errors,
        )
        return result

    async def watch(
        self,
        public_id: str,
        *,
        identifier: str | None = None,
        callback_url: str | None = None,
        forward_url: str | None = None,
        email: str | None = None,
    ) -> WatcherRecord:
        """Register (or re-register) a watcher on request.

        Fields left as ``None`` keep the values of an existing record.
        Raises :class:`RemoteWatchError` after persisting the FAILED state.
        """
        await self._registry.add_credential(public_id, identifier=identifier)
        async with self._locks.hold(public_id):
            existing = await self._registry.find(public_id)
            base = existing or WatcherRecord(credential_public_id=public_id)
            record = replace(
                base,
                credential_identifier=identifier or base.credential_identifier,
                callback_url=callback_url or base.callback_url,
                forward_url=forward_url or base.forward_url,
                email=email or base.email,
            )
            return await self._register(record)

    async def _attempt(self, public_id: str) -> _Outcome:
        async with self._locks.hold(public_id):
            try:
                existing = await self._registry.find(public_id)
                if existing and existing.watch_status in (WatchStatus.ACTIVE, WatchStatus.PENDING):
                    logger.debug("Skipping %s, already %s", public_id, existing.watch_status.value)
                    return _Outcome.SKIPPED

                if existing is None:
                    credential = await self._registry.get_credential(public_id)
                    existing = WatcherRecord(
                        credential_public_id=public_id,
                        credential_identifier=credential.identifier if credential else None,
                    )

                await self._register(existing)
            except RemoteWatchError as exc:
                logger.warning(
                    "Watch registration failed for %s (%s): %s",
                    public_id,
                    exc.cause.value,
                    exc.message,
                )
                return _Outcome.FAILED
            except Exception:
                logger.exception("Unexpected error registering watcher for %s", public_id)
                return _Outcome.FAILED
            return _Outcome.ADDED

    async def _register(self, record: WatcherRecord) -> WatcherRecord:
        """PENDING -> remote call -> ACTIVE or FAILED. Caller holds the credential lock."""
        pending = await self._registry.upsert(replace(record, watch_status=WatchStatus.PENDING))
        try:
            await self._client.register_watch(
                pending.credential_public_id,
                pending.callback_url or self._default_callback_url,
                identifier=pending.credential_identifier,
                email=pending.email,
            )
            return await self._registry.upsert(replace(pending, watch_status=WatchStatus.ACTIVE))
        except Exception:
            await self._mark_failed(pending)
            raise

    async def _mark_failed(self, record: WatcherRecord) -> None:
        try:
            await self._registry.upsert(replace(record, watch_status=WatchStatus.FAILED))
        except Exception:
            # Left PENDING; recover_pending() turns it into FAILED on the next start
            logger.exception("Could not mark watcher for %s as FAILED", record.credential_public_id)
