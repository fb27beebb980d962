"""Tests for DhiwayWatchClient."""

from __future__ import annotations

import json

import httpx
import pytest

from wallet_watcher.exceptions import RemoteWatchError, WatchCause
from wallet_watcher.services.dhiway import DhiwayWatchClient


def _client(handler) -> DhiwayWatchClient:
    return DhiwayWatchClient(
        base_url="https://dhiway.test/",
        api_key="secret",
        watch_path="/api/v1/cred/watch",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


async def test_register_watch_success():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"id": 42}})

    client = _client(handler)
    ack = await client.register_watch(
        "vc-1", "https://wallet.example.com/cb", identifier="did:cord:1", email="a@example.com"
    )
    await client.aclose()

    assert ack.credential_public_id == "vc-1"
    assert ack.watcher_id == "42"
    request = seen[0]
    assert request.url == "https://dhiway.test/api/v1/cred/watch"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "publicId": "vc-1",
        "callbackUrl": "https://wallet.example.com/cb",
        "identifier": "did:cord:1",
        "email": "a@example.com",
    }


async def test_optional_fields_omitted():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"id": "w1"})

    ack = await _client(handler).register_watch("vc-1", "https://cb.example.com")
    assert ack.watcher_id == "w1"
    assert bodies == [{"publicId": "vc-1", "callbackUrl": "https://cb.example.com"}]


@pytest.mark.parametrize("status", [400, 404, 500, 503])
async def test_non_2xx_is_rejected(status):
    client = _client(lambda request: httpx.Response(status, json={"error": "no"}))
    with pytest.raises(RemoteWatchError) as info:
        await client.register_watch("vc-1", "https://cb.example.com")
    assert info.value.cause is WatchCause.REJECTED
    assert info.value.status == status


async def test_non_json_ack_is_rejected():
    client = _client(lambda request: httpx.Response(200, text="OK"))
    with pytest.raises(RemoteWatchError) as info:
        await client.register_watch("vc-1", "https://cb.example.com")
    assert info.value.cause is WatchCause.REJECTED


async def test_non_object_ack_is_rejected():
    client = _client(lambda request: httpx.Response(200, json=["vc-1"]))
    with pytest.raises(RemoteWatchError) as info:
        await client.register_watch("vc-1", "https://cb.example.com")
    assert info.value.cause is WatchCause.REJECTED


async def test_timeout_is_classified():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(RemoteWatchError) as info:
        await _client(handler).register_watch("vc-1", "https://cb.example.com")
    assert info.value.cause is WatchCause.TIMEOUT


async def test_connect_error_is_network():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RemoteWatchError) as info:
        await _client(handler).register_watch("vc-1", "https://cb.example.com")
    assert info.value.cause is WatchCause.NETWORK
    assert info.value.details == {"cause": "NETWORK"}


async def test_no_internal_retry():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(502)

    with pytest.raises(RemoteWatchError):
        await _client(handler).register_watch("vc-1", "https://cb.example.com")
    assert calls == 1
