"""Tests for AsyncApiClient.

Uses pytest-asyncio and httpx.MockTransport; no network access.
"""

from __future__ import annotations

import logging

import httpx
import pytest

from atelier.core.api.http.auth import ApiKeyAuth, QueryKeyAuth, _StaticKeyAuth
from atelier.core.api.http.client import AsyncApiClient
from atelier.core.api.http.config import HttpClientConfig
from atelier.core.api.http.errors import (
    AuthError,
    ClientError,
    DecodeError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    UnexpectedStatusError,
)
from atelier.core.api.http.retry import RetryPolicy, parse_retry_after_seconds
from atelier.core.api.http.utils import join_url

_FAST = RetryPolicy(max_attempts=2, base_delay_s=0.0, jitter=0.0)


@pytest.mark.asyncio
async def test_async_success_json() -> None:
    """Test successful async GET request with JSON response."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True}, headers={"content-type": "application/json"})

    transport = httpx.MockTransport(handler)
    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(cfg, transport=transport) as c:
        resp = await c.get("/v1/ping")
        assert c.json(resp) == {"ok": True}


@pytest.mark.asyncio
async def test_async_retry_500_then_ok() -> None:
    """Test automatic retry on 500 error."""
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"ok": True}, headers={"content-type": "application/json"})

    transport = httpx.MockTransport(handler)
    cfg = HttpClientConfig(base_url="https://example.test")

    async with AsyncApiClient(cfg, transport=transport, retry_policy=_FAST) as c:
        resp = await c.get("/v1/flaky")
        assert resp.status_code == 200
        assert calls["n"] == 2


@pytest.mark.asyncio
async def test_async_post_not_retried_by_default() -> None:
    """POST is not idempotent, so a 503 surfaces immediately."""
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503, text="busy")

    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(
        cfg, transport=httpx.MockTransport(handler), retry_policy=_FAST
    ) as c:
        with pytest.raises(ServerError):
            await c.post("/v1/jobs", json_body={"a": 1})
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_async_retry_after_429() -> None:
    """Test automatic retry on 429 rate limit with Retry-After header."""
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(429, json={"error": "rate"}, headers={"Retry-After": "0"})
        return httpx.Response(200, json={"ok": True})

    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(
        cfg, transport=httpx.MockTransport(handler), retry_policy=_FAST
    ) as c:
        resp = await c.get("/v1/limited")
        assert resp.status_code == 200
    assert calls["n"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "exc_type"),
    [
        (400, ClientError),
        (401, AuthError),
        (403, AuthError),
        (404, NotFoundError),
        (429, RateLimitError),
        (502, ServerError),
    ],
)
async def test_async_status_maps_to_error(status: int, exc_type: type[Exception]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"message": "nope"}})

    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(
        cfg, transport=httpx.MockTransport(handler), retry_policy=RetryPolicy.none()
    ) as c:
        with pytest.raises(exc_type) as ei:
            await c.get("/v1/x")
    assert ei.value.status_code == status
    assert "nope" in (ei.value.response_body_snippet or "")


@pytest.mark.asyncio
async def test_async_expected_status_rejects_other_success_codes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(202, json={"status": "accepted"})

    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(
        cfg, transport=httpx.MockTransport(handler), retry_policy=RetryPolicy.none()
    ) as c:
        with pytest.raises(UnexpectedStatusError) as ei:
            await c.get("/v1/x", expected_status=(200,))
    assert ei.value.status_code == 202


@pytest.mark.asyncio
async def test_async_network_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(
        cfg, transport=httpx.MockTransport(handler), retry_policy=RetryPolicy.none()
    ) as c:
        with pytest.raises(NetworkError) as ei:
            await c.get("/v1/x")
    assert ei.value.status_code is None
    assert isinstance(ei.value.cause, httpx.ConnectError)


@pytest.mark.asyncio
async def test_async_json_rejects_non_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html/>", headers={"content-type": "text/html"})

    cfg = HttpClientConfig(base_url="https://example.test")
    async with AsyncApiClient(cfg, transport=httpx.MockTransport(handler)) as c:
        resp = await c.get("/")
        with pytest.raises(DecodeError):
            c.json(resp)


@pytest.mark.asyncio
async def test_api_key_auth_sets_prefixed_header() -> None:
    seen: dict[str, str | None] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers.get("authorization")
        return httpx.Response(200, json={})

    cfg = HttpClientConfig(base_url="https://fal.test")
    auth = ApiKeyAuth(header_name="Authorization", api_key="abc", prefix="Key")
    async with AsyncApiClient(cfg, auth=auth, transport=httpx.MockTransport(handler)) as c:
        await c.get("/fal-ai/flux/dev")
    assert seen["authorization"] == "Key abc"


@pytest.mark.asyncio
async def test_query_key_auth_is_not_logged(caplog: pytest.LogCaptureFixture) -> None:
    seen: dict[str, str | None] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.url.params.get("key")
        return httpx.Response(200, json={})

    cfg = HttpClientConfig(base_url="https://google.test/v1beta")
    auth = QueryKeyAuth(api_key="very-secret")
    with caplog.at_level(logging.DEBUG, logger="atelier.core.api.http"):
        async with AsyncApiClient(cfg, auth=auth, transport=httpx.MockTransport(handler)) as c:
            await c.get("models/veo:predictLongRunning")
    assert seen["key"] == "very-secret"
    assert "very-secret" not in caplog.text


def test_key_auth_base_is_abstract() -> None:
    with pytest.raises(TypeError):
        _StaticKeyAuth(api_key="abc")  # type: ignore[abstract]

    class HalfDoneAuth(_StaticKeyAuth):
        pass

    with pytest.raises(TypeError):
        HalfDoneAuth(api_key="abc")  # type: ignore[abstract]

def test_join_url() -> None:
    assert (
        join_url("https://queue.fal.run", "/fal-ai/flux/dev")
        == "https://queue.fal.run/fal-ai/flux/dev"
    )
    assert (
        join_url("https://generativelanguage.googleapis.com/v1beta", "models/veo:predictLongRunning")
        == "https://generativelanguage.googleapis.com/v1beta/models/veo:predictLongRunning"
    )
    assert join_url("https://a.test", "https://b.test/file.mp4") == "https://b.test/file.mp4"


def test_parse_retry_after_seconds() -> None:
    assert parse_retry_after_seconds("2") == 2.0
    assert parse_retry_after_seconds("-1") is None
    assert parse_retry_after_seconds("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert parse_retry_after_seconds(None) is None


def test_retry_policy_none_is_single_attempt() -> None:
    policy = RetryPolicy.none()
    assert policy.max_attempts == 1
    assert not RetryPolicy().allows_method("POST")
    assert RetryPolicy(allow_non_idempotent=True).allows_method("POST")
