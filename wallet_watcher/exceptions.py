"""Custom exceptions and FastAPI exception handlers."""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""

    def __init__(self, error: str, message: str, status_code: int = 400, details: dict | None = None):
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(AppError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NOT_FOUND", message, 404, details)


class ValidationError(AppError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__("VALIDATION_ERROR", message, 400, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Missing or invalid Authorization header"):
        super().__init__("UNAUTHORIZED", message, 401)


class InternalError(AppError):
    def __init__(self, message: str = "Internal server error"):
        super().__init__("INTERNAL_ERROR", message, 500)


class WatchCause(str, Enum):
    """Why a remote watch registration failed."""

    NETWORK = "NETWORK"
    REJECTED = "REJECTED"
    TIMEOUT = "TIMEOUT"


class RemoteWatchError(AppError):
    """The credential service did not confirm a watch registration."""

    def __init__(self, cause: WatchCause, message: str, status: int | None = None):
        self.cause = cause
        self.status = status
        details: dict = {"cause": cause.value}
        if status is not None:
            details["upstreamStatus"] = status
        super().__init__("REMOTE_WATCH_FAILED", message, 502, details)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""

    @app.exception_handler(AppError)
    async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        body: dict = {"error": exc.error, "message": exc.message}
        if exc.details:
            body["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "error": "VALIDATION_ERROR",
                "message": "Request body failed validation",
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        err = InternalError()
        return JSONResponse(status_code=err.status_code, content={"error": err.error, "message": err.message})
