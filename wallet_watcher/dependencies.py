"""FastAPI dependency injection via Depends()."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from wallet_watcher.middleware.auth import Principal
    from wallet_watcher.services.reconciler import ReconciliationEngine
    from wallet_watcher.services.registry import WatcherRegistry
    from wallet_watcher.services.relay import CallbackRelay


def get_registry(request: Request) -> WatcherRegistry:
    return request.app.state.registry


def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine


def get_relay(request: Request) -> CallbackRelay:
    return request.app.state.relay


def get_principal(request: Request) -> Principal:
    return request.state.principal
