"""HTTP client for the Dhiway credential service watch API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from wallet_watcher.exceptions import RemoteWatchError, WatchCause

logger = logging.getLogger(__name__)


@dataclass
class WatchAck:
    """Acknowledgement of a watch registration."""

    credential_public_id: str
    watcher_id: str | None = None
    raw: dict = field(default_factory=dict)


class DhiwayWatchClient:
    """Registers credential watches with Dhiway.

    Makes exactly one attempt per call. Every failure is raised as
    :class:`RemoteWatchError`; retrying is the caller's business.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        watch_path: str = "/api/v1/cred/watch",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._watch_path = watch_path
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def register_watch(
        self,
        credential_public_id: str,
        callback_url: str,
        identifier: str | None = None,
        email: str | None = None,
    ) -> WatchAck:
        payload = {"publicId": credential_public_id, "callbackUrl": callback_url}
        if identifier:
            payload["identifier"] = identifier
        if email:
            payload["email"] = email

        try:
            response = await self.client.post(self._watch_path, json=payload)
        except httpx.TimeoutException as exc:
            raise RemoteWatchError(
                WatchCause.TIMEOUT,
                f"Watch registration for {credential_public_id} timed out",
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteWatchError(
                WatchCause.NETWORK,
                f"Watch registration for {credential_public_id} failed: {exc}",
            ) from exc

        if not response.is_success:
            raise RemoteWatchError(
                WatchCause.REJECTED,
                f"Dhiway rejected watch for {credential_public_id} (HTTP {response.status_code})",
                status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteWatchError(
                WatchCause.REJECTED,
                f"Malformed watch acknowledgement for {credential_public_id}",
                status=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise RemoteWatchError(
                WatchCause.REJECTED,
                f"Malformed watch acknowledgement for {credential_public_id}",
                status=response.status_code,
            )

        data = body.get("data") if isinstance(body.get("data"), dict) else body
        watcher_id = data.get("id") or data.get("watcherId")
        logger.debug("Dhiway acknowledged watch for %s (watcher=%s)", credential_public_id, watcher_id)
        return WatchAck(
            credential_public_id=credential_public_id,
            watcher_id=str(watcher_id) if watcher_id is not None else None,
            raw=body,
        )
