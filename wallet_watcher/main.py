"""FastAPI application factory with lifespan context manager."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI

from wallet_watcher.config import Settings
from wallet_watcher.exceptions import register_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: open registry, build clients, start trigger."""
    app.state.started_at = time.monotonic()

    settings: Settings = app.state.settings
    transport: httpx.AsyncBaseTransport | None = app.state.http_transport

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # --- Import here to avoid circular imports at module level ---
    from wallet_watcher.services.dhiway import DhiwayWatchClient
    from wallet_watcher.services.reconciler import ReconciliationEngine
    from wallet_watcher.services.registry import WatcherRegistry
    from wallet_watcher.services.relay import CallbackRelay
    from wallet_watcher.services.scheduler import ReconcileTrigger

    # --- Registry ---
    registry = WatcherRegistry(settings.db_path)
    await registry.start()
    await registry.recover_pending()
    app.state.registry = registry

    # --- Dhiway client + engine ---
    watch_client = DhiwayWatchClient(
        base_url=settings.dhiway_base_url,
        api_key=settings.dhiway_api_key,
        watch_path=settings.dhiway_watch_path,
        timeout=settings.dhiway_timeout_s,
        transport=transport,
    )
    engine = ReconciliationEngine(
        registry=registry,
        client=watch_client,
        default_callback_url=settings.callback_url,
        concurrency=settings.reconcile_concurrency,
    )
    app.state.engine = engine

    relay = CallbackRelay(
        registry=registry,
        settle_delay_s=settings.callback_settle_delay_s,
        forward_timeout_s=settings.forward_timeout_s,
        transport=transport,
    )
    app.state.relay = relay

    # --- Scheduled reconciliation ---
    async def _compact_events() -> None:
        await registry.compact_events(settings.event_retention_hours, settings.event_max_entries)

    trigger = ReconcileTrigger(
        engine,
        interval_s=settings.reconcile_interval_s,
        chunk_size=settings.reconcile_chunk_size,
        after_run=_compact_events,
    )
    await trigger.start()
    app.state.trigger = trigger

    stats = await registry.stats()
    logger.info(
        "Wallet Watcher API started: %d watchers (%d active), %d VCs",
        stats.totalWatchers,
        stats.activeWatchers,
        stats.totalVCs,
    )

    yield

    # --- Shutdown ---
    await trigger.stop()
    await relay.aclose()
    await watch_client.aclose()
    await registry.stop()
    logger.info("Wallet Watcher API stopped")


def create_app(
    settings: Settings | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``http_transport`` replaces the network transport of the outbound
    clients (Dhiway and forward targets).
    """
    if settings is None:
        settings = Settings()

    version = "1.0.0"
    version_file = Path(__file__).parent.parent / "VERSION"
    if version_file.exists():
        version = version_file.read_text().strip()

    from wallet_watcher.models.error import ErrorResponse

    app = FastAPI(
        title="Wallet Watcher API",
        version=version,
        summary="VC watcher reconciliation and Dhiway callback relay",
        lifespan=lifespan,
        responses={
            400: {"model": ErrorResponse},
            401: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )

    app.state.settings = settings
    app.state.version = version
    app.state.http_transport = http_transport

    # Register exception handlers
    register_exception_handlers(app)

    from wallet_watcher.middleware.auth import AuthMiddleware, TokenVerifier

    app.add_middleware(AuthMiddleware, verifier=TokenVerifier(settings.resolve_tokens()))

    # Register routers
    from wallet_watcher.routers import health, housekeeping, wallet

    app.include_router(health.router)
    app.include_router(housekeeping.router)
    app.include_router(wallet.router)

    return app


# Default app instance for uvicorn
app = create_app()
