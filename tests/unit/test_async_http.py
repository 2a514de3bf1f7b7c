"""Unit tests for the async HTTP wrapper and retry behaviour."""

from __future__ import annotations

import httpx
import pytest
from tenacity import wait_fixed

from utils.async_http import AsyncHTTP


pytestmark = pytest.mark.asyncio


async def test_async_http_retries_on_transport_error(monkeypatch, caplog):
    client = AsyncHTTP()
    request = httpx.Request("POST", "https://api.example.com/shipments")
    outcomes = [
        httpx.ConnectError("connection reset", request=request),
        httpx.Response(200, request=request),
    ]
    call_count = 0

    async def fake_request(method, url, **kwargs):
        nonlocal call_count
        call_count += 1
        outcome = outcomes[call_count - 1]
        if isinstance(outcome, httpx.Response):
            return outcome
        raise outcome

    monkeypatch.setattr(client._client, "request", fake_request)
    monkeypatch.setattr(AsyncHTTP.request.retry, "wait", wait_fixed(0))

    with caplog.at_level("WARNING"):
        response = await client.post("/shipments", json={"shipment": {}})

    assert response.status_code == 200
    assert call_count == 2
    assert any("Retrying HTTP request" in record.message for record in caplog.records)

    await client.aclose()


async def test_async_http_does_not_retry_error_statuses():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(503, json={"error": "unavailable"})

    client = AsyncHTTP(
        base_url="https://api.example.com", transport=httpx.MockTransport(handler)
    )

    response = await client.get("/shipments/shp_1")

    assert response.status_code == 503
    assert calls == ["GET"]

    await client.aclose()


async def test_async_http_sends_auth_and_headers():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["token"] = request.headers.get("x-test-token")
        seen["url"] = str(request.url)
        return httpx.Response(204)

    client = AsyncHTTP(
        base_url="https://api.example.com/v2",
        headers={"X-Test-Token": "abc"},
        auth=("key", ""),
        transport=httpx.MockTransport(handler),
    )

    await client.post("/shipments", json={})

    assert seen["auth"].startswith("Basic ")
    assert seen["token"] == "abc"
    assert seen["url"] == "https://api.example.com/v2/shipments"

    await client.aclose()
