"""Health and readiness response models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    version: str
    uptime: int
    lastReconcile: datetime | None
    # Callbacks in the retained event log that matched no watcher
    unmatchedCallbacks: int = Field(ge=0)


class ReadyResponse(BaseModel):
    ready: bool
    reason: str | None = None
