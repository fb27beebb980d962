"""Watcher registry: credentials, watcher records and the callback event log, persisted in SQLite."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import aiosqlite

from wallet_watcher.exceptions import NotFoundError, ValidationError
from wallet_watcher.models.housekeeping import WatcherStats
from wallet_watcher.models.watch import is_http_url

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS credentials (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    public_id TEXT NOT NULL UNIQUE,
    identifier TEXT,
    user_id TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS watchers (
    public_id TEXT PRIMARY KEY,
    identifier TEXT,
    watch_status TEXT NOT NULL DEFAULT 'UNWATCHED',
    callback_url TEXT,
    forward_url TEXT,
    email TEXT,
    last_event_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_watchers_identifier ON watchers(identifier);
CREATE INDEX IF NOT EXISTS idx_watchers_status ON watchers(watch_status);
CREATE TABLE IF NOT EXISTS callback_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    received_ts INTEGER NOT NULL,
    public_id TEXT,
    record_public_id TEXT,
    identifier TEXT,
    event_type TEXT,
    status TEXT,
    matched INTEGER NOT NULL,
    forwarded INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_callback_events_ts ON callback_events(received_ts);
"""

_WATCHER_COLUMNS = (
    "public_id, identifier, watch_status, callback_url, forward_url, email, "
    "last_event_at, created_at, updated_at"
)

# Re-adding a known id only fills in fields that are still NULL
_UPSERT_CREDENTIAL = (
    "INSERT INTO credentials (public_id, identifier, user_id, created_at) "
    "VALUES (?, ?, ?, ?) "
    "ON CONFLICT(public_id) DO UPDATE SET "
    "identifier = COALESCE(credentials.identifier, excluded.identifier), "
    "user_id = COALESCE(credentials.user_id, excluded.user_id)"
)


class WatchStatus(str, Enum):
    UNWATCHED = "UNWATCHED"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


# Statuses that keep a credential out of reconciliation
_HELD = (WatchStatus.ACTIVE.value, WatchStatus.PENDING.value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class WatcherRecord:
    """One watcher per tracked credential."""

    credential_public_id: str
    credential_identifier: str | None = None
    watch_status: WatchStatus = WatchStatus.UNWATCHED
    callback_url: str | None = None
    forward_url: str | None = None
    email: str | None = None
    last_event_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class CredentialRecord:
    public_id: str
    identifier: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None


def _watcher_from_row(row) -> WatcherRecord:
    return WatcherRecord(
        credential_public_id=row[0],
        credential_identifier=row[1],
        watch_status=WatchStatus(row[2]),
        callback_url=row[3],
        forward_url=row[4],
        email=row[5],
        last_event_at=_parse_ts(row[6]),
        created_at=_parse_ts(row[7]),
        updated_at=_parse_ts(row[8]),
    )


class WatcherRegistry:
    """Durable store shared by the reconciliation engine and the callback relay.

    Every mutation is committed before the coroutine returns, so a crash in
    the middle of a batch leaves only completed per-credential writes behind.
    The engine writes status and timestamps through :meth:`upsert`; the relay
    writes ``last_event_at`` through :meth:`touch_event`. The two never touch
    the same columns.
    """

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def start(self) -> None:
        """Open the SQLite DB and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.info("WatcherRegistry opened at %s", self._db_path)

    async def stop(self) -> None:
        """Close DB connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("WatcherRegistry not started")
        return self._db

    # -- Credentials ---------------------------------------------------------

    async def add_credential(
        self,
        public_id: str,
        identifier: str | None = None,
        user_id: str | None = None,
    ) -> None:
        """Track a credential. Re-adding a known id only fills in missing fields."""
        db = self._conn()
        await db.execute(_UPSERT_CREDENTIAL, (public_id, identifier, user_id, _ts(utcnow())))
        await db.commit()

    async def add_credentials(self, items: list[tuple[str, str | None, str | None]]) -> int:
        """Bulk form of :meth:`add_credential` in one transaction.

        ``items`` holds ``(public_id, identifier, user_id)`` tuples. Returns how
        many ids were not tracked before.
        """
        db = self._conn()
        async with db.execute("SELECT COUNT(*) FROM credentials") as cur:
            before = (await cur.fetchone())[0]
        now = _ts(utcnow())
        await db.executemany(
            _UPSERT_CREDENTIAL,
            [(public_id, identifier, user_id, now) for public_id, identifier, user_id in items],
        )
        await db.commit()
        async with db.execute("SELECT COUNT(*) FROM credentials") as cur:
            after = (await cur.fetchone())[0]
        return after - before

    async def get_credential(self, public_id: str) -> CredentialRecord | None:
        async with self._conn().execute(
            "SELECT public_id, identifier, user_id, created_at FROM credentials WHERE public_id = ?",
            (public_id,),
        ) as cur:
            row = await cur.fetchone()
        if row is None:
            return None
        return CredentialRecord(row[0], row[1], row[2], _parse_ts(row[3]))

    async def find_unwatched(self, limit: int) -> list[str]:
        """Credential ids with no ACTIVE or PENDING watcher, oldest first."""
        async with self._conn().execute(
            "SELECT c.public_id FROM credentials c "
            "LEFT JOIN watchers w ON w.public_id = c.public_id "
            "WHERE w.public_id IS NULL OR w.watch_status NOT IN (?, ?) "
            "ORDER BY c.id LIMIT ?",
            (*_HELD, limit),
        ) as cur:
            rows = await cur.fetchall()
        return [row[0] for row in rows]

    # -- Watchers ------------------------------------------------------------

    async def upsert(self, record: WatcherRecord) -> WatcherRecord:
        """Insert or overwrite the mutable fields of a watcher record.

        ``created_at`` of an existing row is preserved and ``last_event_at``
        is never written here.
        """
        if record.forward_url is not None and not is_http_url(record.forward_url):
            raise ValidationError(
                "forwardUrl must be an absolute http(s) URL",
                details={"credentialPublicId": record.credential_public_id},
            )

        db = self._conn()
        now = _ts(utcnow())
        await db.execute(
            "INSERT INTO watchers (public_id, identifier, watch_status, callback_url, "
            "forward_url, email, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(public_id) DO UPDATE SET "
            "identifier = excluded.identifier, "
            "watch_status = excluded.watch_status, "
            "callback_url = excluded.callback_url, "
            "forward_url = excluded.forward_url, "
            "email = excluded.email, "
            "updated_at = excluded.updated_at",
            (
                record.credential_public_id,
                record.credential_identifier,
                record.watch_status.value,
                record.callback_url,
                record.forward_url,
                record.email,
                now,
                now,
            ),
        )
        await db.commit()
        logger.debug(
            "Upserted watcher %s -> %s",
            record.credential_public_id,
            record.watch_status.value,
        )
        return await self.get(record.credential_public_id)

    async def find(self, public_id: str) -> WatcherRecord | None:
        async with self._conn().execute(
            f"SELECT {_WATCHER_COLUMNS} FROM watchers WHERE public_id = ?",
            (public_id,),
        ) as cur:
            row = await cur.fetchone()
        return _watcher_from_row(row) if row else None

    async def get(self, public_id: str) -> WatcherRecord:
        record = await self.find(public_id)
        if record is None:
            raise NotFoundError(f"No watcher for credential {public_id}")
        return record

    async def find_by_identifier(self, identifier: str) -> WatcherRecord | None:
        async with self._conn().execute(
            f"SELECT {_WATCHER_COLUMNS} FROM watchers WHERE identifier = ? "
            "ORDER BY created_at LIMIT 1",
            (identifier,),
        ) as cur:
            row = await cur.fetchone()
        return _watcher_from_row(row) if row else None

    async def touch_event(self, public_id: str, at: datetime | None = None) -> None:
        """Record that a callback arrived for ``public_id``."""
        db = self._conn()
        cur = await db.execute(
            "UPDATE watchers SET last_event_at = ? WHERE public_id = ?",
            (_ts(at or utcnow()), public_id),
        )
        await db.commit()
        if cur.rowcount == 0:
            raise NotFoundError(f"No watcher for credential {public_id}")

    async def recover_pending(self) -> int:
        """Mark watchers left PENDING by an interrupted run as FAILED.

        PENDING is excluded from reconciliation, so a stale PENDING row would
        otherwise never be retried.
        """
        db = self._conn()
        cur = await db.execute(
            "UPDATE watchers SET watch_status = ?, updated_at = ? WHERE watch_status = ?",
            (WatchStatus.FAILED.value, _ts(utcnow()), WatchStatus.PENDING.value),
        )
        await db.commit()
        if cur.rowcount:
            logger.warning("Recovered %d watcher(s) stuck in PENDING", cur.rowcount)
        return cur.rowcount

    # -- Statistics ----------------------------------------------------------

    async def count_by_status(self) -> dict[WatchStatus, int]:
        counts = {status: 0 for status in WatchStatus}
        async with self._conn().execute(
            "SELECT watch_status, COUNT(*) FROM watchers GROUP BY watch_status"
        ) as cur:
            for status, count in await cur.fetchall():
                counts[WatchStatus(status)] = count
        return counts

    async def stats(self) -> WatcherStats:
        counts = await self.count_by_status()
        total_watchers = sum(counts.values())
        active = counts[WatchStatus.ACTIVE]

        db = self._conn()
        async with db.execute("SELECT COUNT(*) FROM credentials") as cur:
            (total_vcs,) = await cur.fetchone()
        async with db.execute(
            "SELECT COUNT(*) FROM credentials c JOIN watchers w ON w.public_id = c.public_id "
            "WHERE w.watch_status = ?",
            (WatchStatus.ACTIVE.value,),
        ) as cur:
            (watched_vcs,) = await cur.fetchone()

        return WatcherStats(
            totalWatchers=total_watchers,
            activeWatchers=active,
            inactiveWatchers=total_watchers - active,
            totalVCs=total_vcs,
            watchedVCs=watched_vcs,
            unwatchedVCs=total_vcs - watched_vcs,
        )

    # -- Callback event log --------------------------------------------------

    async def record_event(
        self,
        *,
        public_id: str | None,
        record_public_id: str | None,
        identifier: str | None,
        event_type: str | None,
        status: str | None,
        matched: bool,
        forwarded: bool = False,
    ) -> None:
        db = self._conn()
        await db.execute(
            "INSERT INTO callback_events (received_ts, public_id, record_public_id, identifier, "
            "event_type, status, matched, forwarded) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                int(time.time()),
                public_id,
                record_public_id,
                identifier,
                event_type,
                status,
                int(matched),
                int(forwarded),
            ),
        )
        await db.commit()

    async def unmatched_count(self) -> int:
        async with self._conn().execute(
            "SELECT COUNT(*) FROM callback_events WHERE matched = 0"
        ) as cur:
            (count,) = await cur.fetchone()
        return count

    async def compact_events(self, max_age_hours: int = 168, max_entries: int = 10000) -> None:
        """Remove old callback events."""
        db = self._conn()
        cutoff_ts = int(time.time()) - (max_age_hours * 3600)

        # Delete by age
        await db.execute("DELETE FROM callback_events WHERE received_ts < ?", (cutoff_ts,))

        # Delete by count (keep newest max_entries)
        await db.execute(
            "DELETE FROM callback_events WHERE id NOT IN "
            "(SELECT id FROM callback_events ORDER BY id DESC LIMIT ?)",
            (max_entries,),
        )
        await db.commit()
        logger.info(
            "Compacted callback events (max_age_hours=%d, max_entries=%d)",
            max_age_hours,
            max_entries,
        )
