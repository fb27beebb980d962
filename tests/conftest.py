"""Shared test fixtures for the Wallet Watcher API."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from wallet_watcher.config import Settings
from wallet_watcher.services.registry import WatcherRegistry

DHIWAY_HOST = "dhiway.test"
FORWARD_HOST = "forward.test"


class FakeRemote:
    """Stands in for Dhiway and for forward targets behind one MockTransport.

    ``fail_ids`` makes the watch endpoint answer 500 for those credential ids.
    ``forward_status`` controls what forward targets answer.
    """

    def __init__(self) -> None:
        self.fail_ids: set[str] = set()
        self.forward_status = 200
        self.watch_requests: list[dict] = []
        self.forwards: list[tuple[str, dict]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if request.url.host == DHIWAY_HOST:
            self.watch_requests.append(body)
            if body.get("publicId") in self.fail_ids:
                return httpx.Response(500, json={"error": "boom"})
            return httpx.Response(200, json={"data": {"id": f"w-{body['publicId']}"}})
        self.forwards.append((str(request.url), body))
        return httpx.Response(self.forward_status, json={"ok": True})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings pointing to tmp_path with the timer and settle delay off."""
    return Settings(
        db_path=tmp_path / "watchers.db",
        dhiway_base_url=f"https://{DHIWAY_HOST}",
        dhiway_api_key="dhiway-key",
        public_base_url="https://wallet.example.com",
        bearer_tokens="test-token-alpha,test-token-beta",
        reconcile_interval_s=0,
        reconcile_chunk_size=100,
        reconcile_concurrency=2,
        callback_settle_delay_s=0,
        log_level="WARNING",
    )


@pytest.fixture
async def registry(tmp_path: Path):
    """A started WatcherRegistry with a tmp SQLite DB."""
    reg = WatcherRegistry(db_path=tmp_path / "registry.db")
    await reg.start()
    yield reg
    await reg.stop()


@pytest_asyncio.fixture
async def app(tmp_settings: Settings, fake_remote: FakeRemote):
    """The real FastAPI app with test settings, inside its lifespan."""
    from wallet_watcher.main import create_app

    application = create_app(settings=tmp_settings, http_transport=fake_remote.transport)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def app_client(app):
    """AsyncClient backed by the running app."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth_headers(token: str = "test-token-alpha") -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}
