import httpx
import pytest

from asset_gateway.core import http_client as hc


def test_retry_policy_delay_backs_off_exponentially():
    policy = hc.RetryPolicy(retry_delay=0.5, retry_backoff=2.0)

    assert policy.delay_for(1) == 0.5
    assert policy.delay_for(2) == 1.0
    assert policy.delay_for(3) == 2.0


@pytest.mark.asyncio
async def test_create_async_http_client_passes_transport(monkeypatch):
    captured: dict[str, object] = {}

    class CapturingClient:
        def __init__(self, **kwargs):
            captured.update(kwargs)

    monkeypatch.setattr(hc.httpx, "AsyncClient", CapturingClient)
    transport = httpx.MockTransport(lambda _: httpx.Response(200))

    hc.create_async_http_client(transport=transport, headers={"x-test": "1"})

    assert captured["transport"] is transport
    assert captured["http2"] is True
    assert captured["headers"] == {"x-test": "1"}


@pytest.mark.asyncio
async def test_request_with_retry_retries_retryable_status():
    calls = {"n": 0}

    async def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json={"ok": True})

    policy = hc.RetryPolicy(max_retries=2, retry_delay=0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await hc.request_with_retry(client, "POST", "https://upstream.test/v1", policy)

    assert response.status_code == 200
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_request_with_retry_returns_last_response_when_exhausted():
    calls = {"n": 0}

    async def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(429, text="slow down")

    policy = hc.RetryPolicy(max_retries=1, retry_delay=0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await hc.request_with_retry(client, "GET", "https://upstream.test/v1", policy)

    assert response.status_code == 429
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_request_with_retry_does_not_retry_client_errors():
    calls = {"n": 0}

    async def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, text="bad")

    policy = hc.RetryPolicy(max_retries=3, retry_delay=0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await hc.request_with_retry(client, "GET", "https://upstream.test/v1", policy)

    assert response.status_code == 400
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_request_with_retry_reraises_network_error_after_retries():
    calls = {"n": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectError("refused", request=request)

    policy = hc.RetryPolicy(max_retries=1, retry_delay=0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(httpx.ConnectError):
            await hc.request_with_retry(client, "GET", "https://upstream.test/v1", policy)

    assert calls["n"] == 2
