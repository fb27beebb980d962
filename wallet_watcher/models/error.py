"""Error response model."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

ErrorCode = Literal[
    "VALIDATION_ERROR",
    "UNAUTHORIZED",
    "NOT_FOUND",
    "REMOTE_WATCH_FAILED",
    "INTERNAL_ERROR",
]


class ErrorResponse(BaseModel):
    error: ErrorCode
    message: str
    details: dict | None = None
