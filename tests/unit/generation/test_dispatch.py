"""Tests for credential/endpoint failover in the Dispatcher."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from atelier.core.generation.credentials import CredentialPool
from atelier.core.generation.dispatch import (
    DispatchOutcome,
    Dispatcher,
    classify_status,
)
from atelier.core.generation.errors import AllProvidersFailed, DispatchError, describe_error
from atelier.core.generation.models import CompiledPayload, ProviderFamily, ProviderTarget

_TWO_ENDPOINTS = (("a", "https://a.test"), ("b", "https://b.test"))


def _payload() -> CompiledPayload:
    return CompiledPayload(
        kind="text-to-image",
        target=ProviderTarget(family=ProviderFamily.FAL, model="fal-ai/flux/dev"),
        path="fal-ai/flux/dev",
        body={"prompt": "a fox"},
        instruction="a fox",
    )


def _recording(
    responder: Callable[[str, str], httpx.Response],
) -> tuple[list[tuple[str, str]], Callable[[httpx.Request], httpx.Response]]:
    """Handler that records (secret, host) per call and answers via responder."""
    calls: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        secret = request.headers["authorization"].removeprefix("Key ")
        calls.append((secret, request.url.host))
        return responder(secret, request.url.host)

    return calls, handler


class TestClassifyStatus:
    @pytest.mark.parametrize(
        ("status", "outcome"),
        [
            (200, DispatchOutcome.SUCCESS),
            (201, DispatchOutcome.SUCCESS),
            (429, DispatchOutcome.CREDENTIAL_EXHAUSTED),
            (401, DispatchOutcome.ENDPOINT_MISMATCH),
            (403, DispatchOutcome.ENDPOINT_MISMATCH),
            (404, DispatchOutcome.ENDPOINT_MISMATCH),
            (400, DispatchOutcome.TERMINAL),
            (422, DispatchOutcome.TERMINAL),
            (500, DispatchOutcome.TERMINAL),
            (None, DispatchOutcome.TERMINAL),
        ],
    )
    def test_mapping(self, status: int | None, outcome: DispatchOutcome) -> None:
        assert classify_status(status) is outcome


class TestFailover:
    @pytest.mark.asyncio
    async def test_success_on_third_pair_stops_there(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        def responder(secret: str, host: str) -> httpx.Response:
            if (secret, host) == ("secret-k2", "a.test"):
                return httpx.Response(200, json={"images": [{"url": "https://cdn.test/x.png"}]})
            return httpx.Response(401, json={"detail": "bad key"})

        calls, handler = _recording(responder)
        pool = make_pool(("k1", "k2"), _TWO_ENDPOINTS)

        resp = await make_dispatcher(handler).dispatch_sync(_payload(), pool)

        assert calls == [
            ("secret-k1", "a.test"),
            ("secret-k1", "b.test"),
            ("secret-k2", "a.test"),
        ]
        assert resp.credential_id == "k2"
        assert resp.endpoint == "a"
        assert resp.json_body == {"images": [{"url": "https://cdn.test/x.png"}]}
        assert [a.outcome for a in resp.attempts] == [
            DispatchOutcome.ENDPOINT_MISMATCH,
            DispatchOutcome.ENDPOINT_MISMATCH,
            DispatchOutcome.SUCCESS,
        ]

    @pytest.mark.asyncio
    async def test_all_mismatches_exhaust_every_pair_once(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        calls, handler = _recording(lambda s, h: httpx.Response(403, json={"detail": "no"}))
        pool = make_pool(("k1", "k2", "k3"), _TWO_ENDPOINTS)

        with pytest.raises(AllProvidersFailed) as ei:
            await make_dispatcher(handler).dispatch_sync(_payload(), pool)

        assert len(calls) == len(pool) == 6
        assert len(set(calls)) == 6
        assert len(ei.value.attempts) == 6
        assert not ei.value.rate_limited
        assert describe_error(ei.value).code == "all_providers_failed"

    @pytest.mark.asyncio
    async def test_rate_limit_skips_remaining_endpoints_of_credential(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        calls, handler = _recording(lambda s, h: httpx.Response(429, json={"detail": "quota"}))
        pool = make_pool(("k1", "k2"), _TWO_ENDPOINTS)

        with pytest.raises(AllProvidersFailed) as ei:
            await make_dispatcher(handler).dispatch_sync(_payload(), pool)

        assert calls == [("secret-k1", "a.test"), ("secret-k2", "a.test")]
        assert ei.value.rate_limited
        info = describe_error(ei.value)
        assert info.code == "rate_limited"
        assert info.retryable

    @pytest.mark.asyncio
    async def test_mixed_rate_limit_and_rejection_is_not_rate_limited(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        def responder(secret: str, host: str) -> httpx.Response:
            if secret == "secret-k1":
                return httpx.Response(429, json={"detail": "quota"})
            return httpx.Response(401, json={"detail": "invalid key"})

        calls, handler = _recording(responder)
        pool = make_pool(("k1", "k2"), _TWO_ENDPOINTS)

        with pytest.raises(AllProvidersFailed) as ei:
            await make_dispatcher(handler).dispatch_sync(_payload(), pool)

        assert len(calls) == 3
        assert not ei.value.rate_limited
        assert describe_error(ei.value).code == "all_providers_failed"

    @pytest.mark.asyncio
    async def test_rate_limited_after_endpoint_mismatch(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        def responder(secret: str, host: str) -> httpx.Response:
            if host == "a.test":
                return httpx.Response(404, json={"detail": "unknown model"})
            return httpx.Response(429, json={"detail": "quota"})

        _, handler = _recording(responder)
        pool = make_pool(("k1", "k2"), _TWO_ENDPOINTS)

        with pytest.raises(AllProvidersFailed) as ei:
            await make_dispatcher(handler).dispatch_sync(_payload(), pool)

        assert ei.value.rate_limited

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 500])
    async def test_terminal_status_stops_immediately(
        self,
        status: int,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        calls, handler = _recording(
            lambda s, h: httpx.Response(status, json={"error": {"message": "prompt rejected"}})
        )
        pool = make_pool(("k1", "k2"), _TWO_ENDPOINTS)

        with pytest.raises(DispatchError) as ei:
            await make_dispatcher(handler).dispatch_sync(_payload(), pool)

        assert len(calls) == 1
        assert ei.value.status_code == status
        assert str(ei.value) == "prompt rejected"
        assert ei.value.credential_id == "k1"
        assert "prompt rejected" in (ei.value.body or "")

    @pytest.mark.asyncio
    async def test_transport_error_is_terminal(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
    ) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.host)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(DispatchError) as ei:
            await make_dispatcher(handler).dispatch_sync(
                _payload(), make_pool(("k1", "k2"), _TWO_ENDPOINTS)
            )
        assert calls == ["a.test"]
        assert ei.value.status_code is None

    @pytest.mark.asyncio
    async def test_binary_response_kept(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
        png_bytes: bytes,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

        resp = await make_dispatcher(handler).dispatch_sync(_payload(), make_pool())
        assert resp.content == png_bytes
        assert resp.json_body is None
        assert not resp.is_json


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_with_credential(
        self,
        make_pool: Callable[..., CredentialPool],
        make_dispatcher: Callable[..., Dispatcher],
        mp4_bytes: bytes,
    ) -> None:
        seen: dict[str, str | None] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            seen["url"] = str(request.url)
            return httpx.Response(200, content=mp4_bytes, headers={"content-type": "video/mp4"})

        credential = make_pool().credentials[0]
        data, ctype = await make_dispatcher(handler).fetch(
            "https://files.test/v/1.mp4", credential
        )
        assert data == mp4_bytes
        assert ctype == "video/mp4"
        assert seen["auth"] == "Key secret-k1"
        assert seen["url"] == "https://files.test/v/1.mp4"
