"""Typed failures for provider and storage HTTP calls.

The class encodes how the status should be read: ``RateLimitError`` is
credential-scoped quota, ``AuthError``/``NotFoundError`` usually mean the
endpoint does not serve this credential or model, everything else is the
caller's or the provider's problem.
"""

from __future__ import annotations

import httpx

from atelier.core.api.http.retry import parse_retry_after_seconds
from atelier.core.api.http.utils import safe_snippet


class ApiError(Exception):
    """Base exception for all provider and storage HTTP errors.

    Args:
        message: Human-readable error description
        method: HTTP method
        url: Request URL, without any query-parameter credential
        status_code: Upstream status, None for transport failures
        response_body_snippet: Truncated response body, kept for provider messages
        retry_after: Seconds from a numeric Retry-After header
        cause: Underlying httpx exception
    """

    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: int | None = None,
        response_body_snippet: str | None = None,
        retry_after: float | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.message = message
        self.method = method
        self.url = url
        self.status_code = status_code
        self.response_body_snippet = response_body_snippet
        self.retry_after = retry_after
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.message} | {self.method} {self.url}"
        if self.status_code is not None:
            text += f" | status={self.status_code}"
        return text

    @classmethod
    def from_response(
        cls, response: httpx.Response, *, method: str, url: str, message: str, body_limit: int
    ) -> ApiError:
        """Build the error subclass matching the response status."""
        error_type = error_for_status(response.status_code)
        return error_type(
            message=message,
            method=method,
            url=url,
            status_code=response.status_code,
            response_body_snippet=safe_snippet(response.content, body_limit),
            retry_after=parse_retry_after_seconds(response.headers.get("retry-after")),
        )


class NetworkError(ApiError):
    """Connection-level failure (DNS, refused, reset)."""


class TimeoutError(ApiError):
    """Request timed out."""


class DecodeError(ApiError):
    """Body was not the JSON the caller expected."""


class RateLimitError(ApiError):
    """HTTP 429."""


class AuthError(ApiError):
    """HTTP 401/403."""


class ClientError(ApiError):
    """HTTP 4xx other than auth and rate limit."""


class NotFoundError(ClientError):
    """HTTP 404, usually a model path the endpoint does not serve."""


class ServerError(ApiError):
    """HTTP 5xx."""


class UnexpectedStatusError(ApiError):
    """A status outside the accepted set that is not itself an HTTP error."""


def error_for_status(status_code: int) -> type[ApiError]:
    if status_code in (401, 403):
        return AuthError
    if status_code == 404:
        return NotFoundError
    if status_code == 429:
        return RateLimitError
    if 400 <= status_code < 500:
        return ClientError
    if status_code >= 500:
        return ServerError
    return UnexpectedStatusError
