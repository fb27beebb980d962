"""Bearer token authentication for wallet routes."""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from wallet_watcher.config import CALLBACK_PATH
from wallet_watcher.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

_PROTECTED_PREFIX = "/api/wallet/"
_PROTECTED_PATHS = {"/housekeeping/credentials"}
# Dhiway calls this one without our credentials
_SKIP_PATHS = {CALLBACK_PATH}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, identified by a digest of its token."""

    subject: str


class TokenVerifier:
    """Checks bearer tokens against the configured token set."""

    def __init__(self, tokens: set[str]):
        self._tokens = tokens

    def verify(self, token: str) -> Principal:
        for known in self._tokens:
            if hmac.compare_digest(token.encode(), known.encode()):
                digest = hashlib.sha256(token.encode()).hexdigest()[:12]
                return Principal(subject=f"token:{digest}")
        raise UnauthorizedError()


class AuthMiddleware(BaseHTTPMiddleware):
    """Bearer token authentication on ``/api/wallet/`` routes and credential import."""

    def __init__(self, app, verifier: TokenVerifier):
        super().__init__(app)
        self._verifier = verifier

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        protected = path.startswith(_PROTECTED_PREFIX) or path in _PROTECTED_PATHS
        if not protected or path in _SKIP_PATHS:
            return await call_next(request)

        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer "):
            return self._unauthorized(UnauthorizedError())

        try:
            principal = self._verifier.verify(auth[7:])
        except UnauthorizedError as exc:
            logger.debug("Rejected token on %s", path)
            return self._unauthorized(exc)

        request.state.principal = principal
        return await call_next(request)

    @staticmethod
    def _unauthorized(exc: UnauthorizedError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        )
