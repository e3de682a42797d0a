"""Tests for common/http.py: fetch with retries and backoff.

抓取重试与退避逻辑测试。
"""

from __future__ import annotations

import base64

import httpx
import pytest

from common import http
from common.errors import ErrorType, FetchError


def _mock_client(responses):
    """AsyncClient whose transport replays ``responses`` in order."""
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        item = responses[min(calls["count"], len(responses) - 1)]
        calls["count"] += 1
        if isinstance(item, Exception):
            raise item
        return item

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, calls


@pytest.mark.asyncio
async def test_fetch_success(monkeypatch) -> None:
    client, calls = _mock_client([httpx.Response(200, text="<html>ok</html>")])
    monkeypatch.setattr(http, "get_client", lambda timeout=30.0: client)

    assert await http.fetch("https://example.com") == "<html>ok</html>"
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_fetch_retries_server_error_then_succeeds(monkeypatch) -> None:
    client, calls = _mock_client([httpx.Response(500), httpx.Response(200, text="ok")])
    monkeypatch.setattr(http, "get_client", lambda timeout=30.0: client)

    assert await http.fetch("https://example.com", max_retries=3, backoff_base=0) == "ok"
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_fetch_does_not_retry_client_error(monkeypatch) -> None:
    client, calls = _mock_client([httpx.Response(404)])
    monkeypatch.setattr(http, "get_client", lambda timeout=30.0: client)

    with pytest.raises(FetchError) as exc_info:
        await http.fetch("https://example.com/missing", max_retries=3)
    assert calls["count"] == 1
    assert exc_info.value.attempts == 1


@pytest.mark.asyncio
async def test_fetch_exhausts_attempts_on_network_error(monkeypatch) -> None:
    client, calls = _mock_client([httpx.ConnectError("boom")])
    monkeypatch.setattr(http, "get_client", lambda timeout=30.0: client)

    with pytest.raises(FetchError) as exc_info:
        await http.fetch("https://example.com", max_retries=3, backoff_base=0)
    assert calls["count"] == 3
    assert exc_info.value.error_type == ErrorType.NETWORK
    assert isinstance(exc_info.value.last_cause, httpx.ConnectError)


@pytest.mark.asyncio
async def test_fetch_rate_limited_reports_rate_limit(monkeypatch) -> None:
    client, calls = _mock_client([httpx.Response(429, headers={"Retry-After": "0"})])
    monkeypatch.setattr(http, "get_client", lambda timeout=30.0: client)

    with pytest.raises(FetchError) as exc_info:
        await http.fetch("https://example.com", max_retries=2, backoff_base=0)
    assert calls["count"] == 2
    assert exc_info.value.error_type == ErrorType.RATE_LIMIT


def test_backoff_delay_is_capped() -> None:
    assert http.backoff_delay(1, base=1.0, cap=30.0) == 1.0
    assert http.backoff_delay(3, base=1.0, cap=30.0) == 4.0
    assert http.backoff_delay(10, base=1.0, cap=30.0) == 30.0


@pytest.mark.asyncio
async def test_fetch_json_api_sends_params_accept_and_basic_auth(monkeypatch) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="[]")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(http, "get_client", lambda timeout=30.0: client)

    body = await http.fetch(
        "https://www.kaggle.com/api/v1/competitions/list",
        params={"page": 1, "sortBy": "latestDeadline"},
        accept_json=True,
        auth=("alice", "secret"),
    )

    assert body == "[]"
    request = seen[0]
    assert request.url.params["page"] == "1"
    assert request.url.params["sortBy"] == "latestDeadline"
    assert request.headers["Accept"].startswith("application/json")
    assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"alice:secret").decode()
