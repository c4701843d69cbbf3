"""Credential/endpoint pools per provider family.

Pools are built once at startup by ``ProviderRegistry.from_config`` and are
read-only afterwards, so concurrent invocations share them without locking.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from enum import Enum
from types import MappingProxyType

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from atelier.core.api.http.auth import ApiKeyAuth, QueryKeyAuth
from atelier.core.config.models import AppConfig, EndpointConfig
from atelier.core.generation.errors import ProviderUnavailable
from atelier.core.generation.models import DispatchMode, ProviderFamily

logger = logging.getLogger(__name__)


class AuthScheme(str, Enum):
    """How a credential is attached to a request."""

    FAL_KEY = "fal-key"  # Authorization: Key <secret>
    BEARER = "bearer"  # Authorization: Bearer <secret>
    GOOG_HEADER = "goog-header"  # x-goog-api-key: <secret>
    QUERY_KEY = "query-key"  # ?key=<secret>


FAMILY_AUTH: dict[ProviderFamily, AuthScheme] = {
    ProviderFamily.FAL: AuthScheme.FAL_KEY,
    ProviderFamily.GOOGLE: AuthScheme.GOOG_HEADER,
    ProviderFamily.HUGGINGFACE: AuthScheme.BEARER,
    ProviderFamily.TOGETHER: AuthScheme.BEARER,
    ProviderFamily.SILICONFLOW: AuthScheme.BEARER,
}


class Credential(BaseModel):
    """An opaque secret for one provider family. Never logged."""

    model_config = ConfigDict(frozen=True)

    id: str
    family: ProviderFamily
    secret: SecretStr
    scheme: AuthScheme

    def auth(self) -> httpx.Auth:
        """Build the httpx auth handler for this credential."""
        value = self.secret.get_secret_value()
        if self.scheme == AuthScheme.QUERY_KEY:
            return QueryKeyAuth(param_name="key", api_key=value)
        if self.scheme == AuthScheme.GOOG_HEADER:
            return ApiKeyAuth(header_name="x-goog-api-key", api_key=value)
        prefix = "Key" if self.scheme == AuthScheme.FAL_KEY else "Bearer"
        return ApiKeyAuth(header_name="Authorization", api_key=value, prefix=prefix)


class Endpoint(BaseModel):
    """A labelled base URL serving a provider family."""

    model_config = ConfigDict(frozen=True)

    label: str
    base_url: str


def _ep(label: str, base_url: str) -> Endpoint:
    return Endpoint(label=label, base_url=base_url)


_GOOGLE = (_ep("generativelanguage", "https://generativelanguage.googleapis.com/v1beta"),)
_SILICONFLOW = (_ep("siliconflow", "https://api.siliconflow.com/v1"),)

DEFAULT_ENDPOINTS: dict[ProviderFamily, dict[DispatchMode, tuple[Endpoint, ...]]] = {
    ProviderFamily.FAL: {
        DispatchMode.SYNC: (_ep("fal-run", "https://fal.run"),),
        DispatchMode.QUEUE: (_ep("fal-queue", "https://queue.fal.run"),),
    },
    ProviderFamily.GOOGLE: {
        DispatchMode.SYNC: _GOOGLE,
        DispatchMode.OPERATION: _GOOGLE,
    },
    ProviderFamily.HUGGINGFACE: {
        DispatchMode.SYNC: (
            _ep("hf-router", "https://router.huggingface.co/hf-inference"),
            _ep("hf-inference-api", "https://api-inference.huggingface.co"),
        ),
    },
    ProviderFamily.TOGETHER: {
        DispatchMode.SYNC: (_ep("together", "https://api.together.xyz/v1"),),
    },
    ProviderFamily.SILICONFLOW: {
        DispatchMode.SYNC: _SILICONFLOW,
        DispatchMode.QUEUE: _SILICONFLOW,
    },
}


class CredentialPool(BaseModel):
    """Ordered credentials x ordered endpoints for one family and dispatch mode.

    Iteration order is credentials outer, endpoints inner.
    """

    model_config = ConfigDict(frozen=True)

    family: ProviderFamily
    mode: DispatchMode = DispatchMode.SYNC
    credentials: tuple[Credential, ...] = Field(min_length=1)
    endpoints: tuple[Endpoint, ...] = Field(min_length=1)

    def pairs(self) -> Iterator[tuple[Credential, Endpoint]]:
        for credential in self.credentials:
            for endpoint in self.endpoints:
                yield credential, endpoint

    def __len__(self) -> int:
        return len(self.credentials) * len(self.endpoints)

    def credential(self, credential_id: str) -> Credential:
        for credential in self.credentials:
            if credential.id == credential_id:
                return credential
        raise ProviderUnavailable(
            self.family.value, f"credential '{credential_id}' is no longer configured"
        )

    def endpoint(self, label: str) -> Endpoint:
        for endpoint in self.endpoints:
            if endpoint.label == label:
                return endpoint
        raise ProviderUnavailable(self.family.value, f"endpoint '{label}' is no longer configured")

    def restricted_to(self, credential_id: str, endpoint_label: str) -> CredentialPool:
        """A single-pair pool, used where a handle is scoped to its submitting credential."""
        return self.model_copy(
            update={
                "credentials": (self.credential(credential_id),),
                "endpoints": (self.endpoint(endpoint_label),),
            }
        )


class ProviderStatus(BaseModel):
    """Summary of one family for diagnostics. Holds no secrets."""

    family: ProviderFamily
    available: bool
    reason: str | None = None
    credential_ids: list[str] = Field(default_factory=list)
    endpoints: dict[DispatchMode, list[str]] = Field(default_factory=dict)


class ProviderRegistry:
    """Read-only map of (family, mode) to CredentialPool.

    A family with no credentials is unavailable. Requesting its pool raises
    ProviderUnavailable while every other family keeps working.

    Args:
        pools: Pools keyed by (family, mode)
        unavailable: Reason per family that could not be provisioned
    """

    def __init__(
        self,
        pools: Mapping[tuple[ProviderFamily, DispatchMode], CredentialPool],
        unavailable: Mapping[ProviderFamily, str] | None = None,
    ) -> None:
        self._pools = MappingProxyType(dict(pools))
        self._unavailable = MappingProxyType(dict(unavailable or {}))

    @classmethod
    def from_config(cls, config: AppConfig) -> ProviderRegistry:
        """Build frozen pools for every known family from application config."""
        pools: dict[tuple[ProviderFamily, DispatchMode], CredentialPool] = {}
        unavailable: dict[ProviderFamily, str] = {}

        for family in ProviderFamily:
            section = config.provider(family.value)
            if not section.enabled:
                unavailable[family] = "disabled in configuration"
                logger.info("Provider family %s disabled in configuration", family.value)
                continue
            if not section.credentials:
                unavailable[family] = "no credentials configured"
                logger.error(
                    "No credentials configured for provider family %s; it will be unavailable",
                    family.value,
                )
                continue

            scheme = FAMILY_AUTH[family]
            if family == ProviderFamily.GOOGLE and section.query_param_auth:
                scheme = AuthScheme.QUERY_KEY
            credentials = tuple(
                Credential(id=c.id, family=family, secret=c.secret, scheme=scheme)
                for c in section.credentials
            )

            overrides: dict[DispatchMode, list[EndpointConfig]] = {
                DispatchMode.SYNC: section.sync_endpoints,
                DispatchMode.QUEUE: section.queue_endpoints,
                DispatchMode.OPERATION: section.operation_endpoints,
            }
            for mode, defaults in DEFAULT_ENDPOINTS[family].items():
                configured = overrides[mode]
                endpoints = (
                    tuple(_ep(e.label, e.base_url) for e in configured) if configured else defaults
                )
                pools[(family, mode)] = CredentialPool(
                    family=family, mode=mode, credentials=credentials, endpoints=endpoints
                )
            logger.debug("Provisioned %d credential(s) for %s", len(credentials), family.value)

        return cls(pools, unavailable)

    def is_available(self, family: ProviderFamily | str) -> bool:
        family = ProviderFamily(family)
        return family not in self._unavailable and any(f == family for f, _ in self._pools)

    def pool(self, family: ProviderFamily | str, mode: DispatchMode | str) -> CredentialPool:
        """Return the pool for a family and mode.

        Raises:
            ProviderUnavailable: If the family has no credentials or does not support the mode
        """
        family = ProviderFamily(family)
        mode = DispatchMode(mode)
        if family in self._unavailable:
            raise ProviderUnavailable(family.value, self._unavailable[family])
        pool = self._pools.get((family, mode))
        if pool is None:
            raise ProviderUnavailable(family.value, f"{mode.value} dispatch is not supported")
        return pool

    def status(self) -> list[ProviderStatus]:
        """Per-family availability summary."""
        out: list[ProviderStatus] = []
        for family in ProviderFamily:
            if family in self._unavailable:
                out.append(
                    ProviderStatus(
                        family=family, available=False, reason=self._unavailable[family]
                    )
                )
                continue
            modes = {m: p for (f, m), p in self._pools.items() if f == family}
            if not modes:
                out.append(ProviderStatus(family=family, available=False, reason="not configured"))
                continue
            first = next(iter(modes.values()))
            out.append(
                ProviderStatus(
                    family=family,
                    available=True,
                    credential_ids=[c.id for c in first.credentials],
                    endpoints={m: [e.label for e in p.endpoints] for m, p in modes.items()},
                )
            )
        return out
