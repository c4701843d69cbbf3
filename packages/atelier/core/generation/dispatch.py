"""Synchronous dispatcher with credential/endpoint failover.

Credentials are tried outer, endpoints inner, one HTTP call per pair and
never a second call to the same pair. ``classify_status`` is the only place
that gives meaning to an upstream status code.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from atelier.core.api.http.client import AsyncApiClient
from atelier.core.api.http.config import HttpClientConfig
from atelier.core.api.http.errors import ApiError
from atelier.core.api.http.retry import RetryPolicy
from atelier.core.config.models import HttpConfig
from atelier.core.generation.credentials import Credential, CredentialPool, Endpoint
from atelier.core.generation.errors import AllProvidersFailed, DispatchError, provider_message
from atelier.core.generation.models import CompiledPayload

logger = logging.getLogger(__name__)

_SUCCESS_STATUSES = tuple(range(200, 300))


class DispatchOutcome(str, Enum):
    SUCCESS = "success"
    CREDENTIAL_EXHAUSTED = "credential_exhausted"
    ENDPOINT_MISMATCH = "endpoint_mismatch"
    TERMINAL = "terminal"


def classify_status(status_code: int | None) -> DispatchOutcome:
    """Classify an upstream status. ``None`` means a transport-level failure.

    - 2xx: success
    - 429: quota exhausted for this credential, move to the next credential
    - 401/403/404: auth or shape mismatch for this endpoint, try the next endpoint
    - anything else: terminal
    """
    if status_code is None:
        return DispatchOutcome.TERMINAL
    if 200 <= status_code < 300:
        return DispatchOutcome.SUCCESS
    if status_code == 429:
        return DispatchOutcome.CREDENTIAL_EXHAUSTED
    if status_code in (401, 403, 404):
        return DispatchOutcome.ENDPOINT_MISMATCH
    return DispatchOutcome.TERMINAL


class DispatchAttempt(BaseModel):
    """Record of one HTTP call against one (credential, endpoint) pair."""

    model_config = ConfigDict(frozen=True)

    credential_id: str
    endpoint: str
    status_code: int | None = None
    outcome: DispatchOutcome
    detail: str = ""


class ProviderResponse(BaseModel):
    """Successful upstream response plus the pair that served it."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    content_type: str = ""
    content: bytes = Field(default=b"", repr=False)
    json_body: Any = None
    credential_id: str
    endpoint: str
    base_url: str
    attempts: tuple[DispatchAttempt, ...] = ()

    @property
    def is_json(self) -> bool:
        return "json" in self.content_type


class ClientFactory:
    """Builds AsyncApiClient instances for provider and storage calls.

    Args:
        http: Timeout configuration
        transport: Optional transport shared by every client (useful for testing)
    """

    def __init__(
        self,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.http = http or HttpConfig()
        self.transport = transport

    def create(
        self,
        base_url: str,
        *,
        auth: httpx.Auth | None = None,
        retry_policy: RetryPolicy | None = None,
        headers: dict[str, str] | None = None,
    ) -> AsyncApiClient:
        config = HttpClientConfig(
            base_url=base_url,
            timeout=httpx.Timeout(self.http.timeout_s, connect=self.http.connect_timeout_s),
            headers=headers or {},
        )
        return AsyncApiClient(
            config, auth=auth, retry_policy=retry_policy, transport=self.transport
        )


class Dispatcher:
    """Executes provider calls against a CredentialPool with ordered failover."""

    def __init__(self, clients: ClientFactory | None = None) -> None:
        self.clients = clients or ClientFactory()

    async def dispatch_sync(self, payload: CompiledPayload, pool: CredentialPool) -> ProviderResponse:
        """POST a compiled payload, failing over across the pool.

        Raises:
            DispatchError: On a terminal upstream status or transport error
            AllProvidersFailed: When every pair was exhausted
        """
        return await self.send("POST", payload.path, pool, json_body=payload.body)

    async def send(
        self,
        method: str,
        path: str,
        pool: CredentialPool,
        *,
        json_body: Any = None,
    ) -> ProviderResponse:
        """Send one request per (credential, endpoint) pair until one succeeds."""
        attempts: list[DispatchAttempt] = []

        for credential in pool.credentials:
            for endpoint in pool.endpoints:
                try:
                    resp = await self._call(method, path, credential, endpoint, json_body)
                except ApiError as exc:
                    outcome = classify_status(exc.status_code)
                    detail = provider_message(exc.response_body_snippet) or exc.message
                    attempts.append(
                        DispatchAttempt(
                            credential_id=credential.id,
                            endpoint=endpoint.label,
                            status_code=exc.status_code,
                            outcome=outcome,
                            detail=detail,
                        )
                    )
                    if outcome == DispatchOutcome.TERMINAL:
                        logger.error(
                            "Terminal %s failure on %s via %s: %s",
                            pool.family.value,
                            endpoint.label,
                            credential.id,
                            detail,
                        )
                        raise DispatchError.from_api_error(
                            exc, credential_id=credential.id, endpoint=endpoint.label
                        ) from exc
                    if outcome == DispatchOutcome.CREDENTIAL_EXHAUSTED:
                        logger.warning(
                            "Credential %s rate limited on %s; skipping its remaining endpoints",
                            credential.id,
                            endpoint.label,
                        )
                        break
                    logger.warning(
                        "Endpoint %s rejected credential %s (status %s); trying next endpoint",
                        endpoint.label,
                        credential.id,
                        exc.status_code,
                    )
                    continue

                attempts.append(
                    DispatchAttempt(
                        credential_id=credential.id,
                        endpoint=endpoint.label,
                        status_code=resp.status_code,
                        outcome=DispatchOutcome.SUCCESS,
                    )
                )
                return _to_provider_response(resp, credential, endpoint, attempts)

        logger.error(
            "All %d attempt(s) against %s failed", len(attempts), pool.family.value
        )
        raise AllProvidersFailed(pool.family.value, attempts)

    async def fetch(self, url: str, credential: Credential | None = None) -> tuple[bytes, str]:
        """Download bytes from an absolute URL, authenticating when a credential is given.

        Downloads keep the client's default retry policy for idempotent GETs.

        Raises:
            ApiError: On any HTTP or transport failure
        """
        auth = credential.auth() if credential is not None else None
        async with self.clients.create(url, auth=auth) as client:
            resp = await client.get(url)
        return resp.content, resp.headers.get("content-type", "")

    async def _call(
        self,
        method: str,
        path: str,
        credential: Credential,
        endpoint: Endpoint,
        json_body: Any,
    ) -> httpx.Response:
        async with self.clients.create(
            endpoint.base_url, auth=credential.auth(), retry_policy=RetryPolicy.none()
        ) as client:
            return await client.request(
                method, path, json_body=json_body, expected_status=_SUCCESS_STATUSES
            )


def _to_provider_response(
    resp: httpx.Response,
    credential: Credential,
    endpoint: Endpoint,
    attempts: list[DispatchAttempt],
) -> ProviderResponse:
    content_type = resp.headers.get("content-type", "")
    json_body: Any = None
    if "json" in content_type and resp.content:
        try:
            json_body = resp.json()
        except ValueError:
            logger.warning("Provider %s returned malformed JSON", endpoint.label)
    return ProviderResponse(
        status_code=resp.status_code,
        content_type=content_type,
        content=resp.content,
        json_body=json_body,
        credential_id=credential.id,
        endpoint=endpoint.label,
        base_url=endpoint.base_url,
        attempts=tuple(attempts),
    )
