"""Shared pytest fixtures for atelier tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import httpx
from pydantic import SecretStr
import pytest

from atelier.core.generation.credentials import (
    FAMILY_AUTH,
    Credential,
    CredentialPool,
    Endpoint,
)
from atelier.core.generation.dispatch import ClientFactory, Dispatcher
from atelier.core.generation.models import DispatchMode, ProviderFamily

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 24

Handler = Callable[[httpx.Request], httpx.Response]


# ============================================================================
# Media Fixtures
# ============================================================================


@pytest.fixture
def png_bytes() -> bytes:
    """Minimal bytes that sniff as image/png."""
    return PNG_BYTES


@pytest.fixture
def mp4_bytes() -> bytes:
    """Minimal bytes that sniff as video/mp4."""
    return MP4_BYTES


# ============================================================================
# Provider Fixtures
# ============================================================================


@pytest.fixture
def make_pool() -> Callable[..., CredentialPool]:
    """Factory for credential pools with predictable secrets (``secret-<id>``)."""

    def _make(
        credential_ids: Sequence[str] = ("k1",),
        endpoints: Sequence[tuple[str, str]] = (("primary", "https://primary.test"),),
        family: ProviderFamily = ProviderFamily.FAL,
        mode: DispatchMode = DispatchMode.SYNC,
    ) -> CredentialPool:
        scheme = FAMILY_AUTH[family]
        return CredentialPool(
            family=family,
            mode=mode,
            credentials=tuple(
                Credential(id=c, family=family, secret=SecretStr(f"secret-{c}"), scheme=scheme)
                for c in credential_ids
            ),
            endpoints=tuple(Endpoint(label=label, base_url=url) for label, url in endpoints),
        )

    return _make


@pytest.fixture
def make_dispatcher() -> Callable[[Handler], Dispatcher]:
    """Factory for a Dispatcher whose every client routes through a MockTransport."""

    def _make(handler: Handler) -> Dispatcher:
        return Dispatcher(ClientFactory(transport=httpx.MockTransport(handler)))

    return _make
