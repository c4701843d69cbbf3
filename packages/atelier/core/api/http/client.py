"""Async HTTP client for provider and storage calls.

Every failure leaves this module as a typed ``ApiError`` so the dispatcher
can classify it by status without parsing text. Retries are opt-in per
client through ``RetryPolicy``; provider dispatch turns them off and fails
over to the next credential or endpoint instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from atelier.core.api.http.config import HttpClientConfig
from atelier.core.api.http.errors import (
    ApiError,
    DecodeError,
    NetworkError,
    TimeoutError,
)
from atelier.core.api.http.logging_utils import log_attempt, log_outcome
from atelier.core.api.http.retry import RetryPolicy
from atelier.core.api.http.utils import join_url, safe_snippet

logger = logging.getLogger(__name__)


class AsyncApiClient:
    """One httpx.AsyncClient bound to one endpoint and, optionally, one credential.

    Args:
        config: Endpoint settings
        auth: Credential auth flow (ApiKeyAuth or QueryKeyAuth)
        retry_policy: Defaults to retrying idempotent methods on 429/5xx
        transport: Optional custom transport (useful for testing)

    Example:
        >>> config = HttpClientConfig(base_url="https://queue.fal.run")
        >>> async with AsyncApiClient(config, retry_policy=RetryPolicy.none()) as client:
        ...     resp = await client.post("/fal-ai/flux/dev", json_body={"prompt": "a fox"})
        ...     data = client.json(resp)
    """

    def __init__(
        self,
        config: HttpClientConfig,
        *,
        auth: httpx.Auth | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = httpx.AsyncClient(
            headers={"User-Agent": "atelier/0.1", **config.headers},
            timeout=config.timeout,
            follow_redirects=True,
            auth=auth,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncApiClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
        content: bytes | None = None,
        expected_status: Sequence[int] | None = None,
    ) -> httpx.Response:
        """Send a request, retrying as the policy allows.

        Args:
            method: HTTP method
            path: Path relative to the endpoint base URL, or an absolute URL
            headers: Extra headers for this request
            json_body: JSON-serializable body
            content: Raw body (mutually exclusive with json_body)
            expected_status: Accepted statuses (defaults to any status below 400)

        Raises:
            ApiError: Categorized by status, or NetworkError/TimeoutError for transport failures
        """
        method = method.upper()
        url = join_url(self.config.base_url, path)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send(
                    method, url, attempt, headers or {}, json_body, content, expected_status
                )
            except ApiError as exc:
                delay = self._retry_delay(method, attempt, exc)
                if delay is None:
                    raise
                logger.info(
                    "Retrying %s %s in %.2fs after attempt %d: %s",
                    method,
                    url,
                    delay,
                    attempt,
                    exc.message,
                )
                await asyncio.sleep(delay)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    def json(self, response: httpx.Response) -> Any:
        """Decode a JSON body; an empty body decodes to None.

        Raises:
            DecodeError: If the body is not JSON
        """
        if not response.content:
            return None
        ctype = response.headers.get("content-type", "")
        problem: str | None = None
        cause: ValueError | None = None
        if "json" not in ctype:
            problem = f"Expected JSON, got {ctype or 'no content-type'}"
        else:
            try:
                return response.json()
            except ValueError as e:
                problem, cause = "Malformed JSON body", e
        raise DecodeError(
            message=problem,
            method=response.request.method,
            url=str(response.request.url.copy_remove_param("key")),
            status_code=response.status_code,
            response_body_snippet=safe_snippet(response.content, self.config.max_error_body),
            cause=cause,
        ) from cause

    async def _send(
        self,
        method: str,
        url: str,
        attempt: int,
        headers: Mapping[str, str],
        json_body: Any,
        content: bytes | None,
        expected_status: Sequence[int] | None,
    ) -> httpx.Response:
        started = log_attempt(
            method,
            url,
            attempt,
            {**self._client.headers, **headers},
            self.config.redact_headers,
        )
        try:
            resp = await self._client.request(
                method, url, headers=headers, json=json_body, content=content
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(
                message="Request timed out", method=method, url=url, cause=e
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(
                message=f"Network error: {e}", method=method, url=url, cause=e
            ) from e
        log_outcome(method, url, attempt, resp.status_code, started)

        if expected_status is not None:
            accepted = resp.status_code in expected_status
        else:
            accepted = resp.status_code < 400
        if not accepted:
            raise ApiError.from_response(
                resp,
                method=method,
                url=url,
                message=f"Upstream returned {resp.status_code}",
                body_limit=self.config.max_error_body,
            )
        return resp

    def _retry_delay(self, method: str, attempt: int, exc: ApiError) -> float | None:
        """Seconds to wait before the next attempt, or None to give up."""
        policy = self.retry_policy
        if attempt >= policy.max_attempts or not policy.allows_method(method):
            return None
        if exc.status_code is None:
            if isinstance(exc, NetworkError | TimeoutError):
                return policy.compute_delay(attempt)
            return None
        if exc.status_code not in policy.retry_on_status:
            return None
        if exc.retry_after is not None:
            return exc.retry_after
        return policy.compute_delay(attempt)
