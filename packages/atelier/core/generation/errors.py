"""Typed failures of the generation layer.

Every error maps to an ``ErrorInfo`` through ``describe_error`` so callers get
a stable ``{code, message, retryable, handle?}`` shape instead of a traceback.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from atelier.core.api.http.errors import ApiError

if TYPE_CHECKING:
    from atelier.core.generation.dispatch import DispatchAttempt
    from atelier.core.generation.jobs import JobHandle


class GenerationError(Exception):
    """Base class for generation failures."""

    code: str = "generation_error"
    retryable: bool = False


class CompileError(GenerationError):
    """A request could not be compiled. Compilation is total, so this signals a bug."""

    code = "compile_error"


class ProviderUnavailable(GenerationError):
    """The provider family has no usable credentials."""

    code = "provider_unavailable"

    def __init__(self, family: str, reason: str = "no credentials configured") -> None:
        self.family = family
        self.reason = reason
        super().__init__(f"Provider '{family}' is unavailable: {reason}")


class DispatchError(GenerationError):
    """Terminal upstream failure. Carries the upstream status and body."""

    code = "dispatch_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        credential_id: str | None = None,
        endpoint: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.credential_id = credential_id
        self.endpoint = endpoint
        super().__init__(message)

    @classmethod
    def from_api_error(
        cls, exc: ApiError, *, credential_id: str | None = None, endpoint: str | None = None
    ) -> DispatchError:
        message = provider_message(exc.response_body_snippet) or exc.message
        return cls(
            message,
            status_code=exc.status_code,
            body=exc.response_body_snippet,
            credential_id=credential_id,
            endpoint=endpoint,
        )


class AllProvidersFailed(GenerationError):
    """Every (credential, endpoint) pair in the pool was tried without success."""

    code = "all_providers_failed"

    def __init__(self, family: str, attempts: list[DispatchAttempt]) -> None:
        self.family = family
        self.attempts = list(attempts)
        # Rate limited only when every credential was last turned away with a 429.
        last_status = {a.credential_id: a.status_code for a in self.attempts}
        self.rate_limited = bool(last_status) and all(s == 429 for s in last_status.values())
        last = self.attempts[-1].detail if self.attempts else "empty pool"
        super().__init__(
            f"All {len(self.attempts)} attempt(s) against '{family}' failed; last: {last}"
        )


class JobFailed(GenerationError):
    """The provider reported an explicit error for a finished job."""

    code = "job_failed"

    def __init__(self, handle: JobHandle, provider_message: str) -> None:
        self.handle = handle
        self.provider_message = provider_message
        super().__init__(f"Job failed: {provider_message}")


class JobTimedOut(GenerationError):
    """The poll budget ran out. The job may still finish server-side."""

    code = "job_timed_out"
    retryable = True

    def __init__(self, handle: JobHandle, attempts: int) -> None:
        self.handle = handle
        self.attempts = attempts
        super().__init__(
            f"Job still running after {attempts} poll(s); re-check later with the handle"
        )


class ResultDecodeError(GenerationError):
    """The provider response did not contain any recognizable media."""

    code = "result_decode_error"


class StorageError(GenerationError):
    """An artifact store failed to persist bytes."""

    code = "storage_error"
    retryable = True


class StorageDegraded(GenerationError):
    """Storage failed and the caller required a durable reference."""

    code = "storage_degraded"
    retryable = True

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class ErrorInfo(BaseModel):
    """Caller-facing error description."""

    code: str
    message: str
    retryable: bool = False
    handle: dict[str, Any] | None = None


def provider_message(body: str | None) -> str | None:
    """Pull the most specific message out of a provider error body."""
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip()[:500] or None
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(err, str):
        return err
    detail = data.get("detail")
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        return str(detail[0].get("msg") or detail[0])
    if data.get("message"):
        return str(data["message"])
    return None


def describe_error(exc: BaseException) -> ErrorInfo:
    """Map any exception raised by the orchestration layer to an ErrorInfo."""
    if isinstance(exc, AllProvidersFailed):
        if exc.rate_limited:
            return ErrorInfo(
                code="rate_limited",
                message="All provider credentials are rate limited. Try again later.",
                retryable=True,
            )
        return ErrorInfo(code=exc.code, message=str(exc), retryable=False)
    if isinstance(exc, JobTimedOut):
        return ErrorInfo(
            code=exc.code,
            message=str(exc),
            retryable=True,
            handle=exc.handle.model_dump(mode="json"),
        )
    if isinstance(exc, JobFailed):
        return ErrorInfo(
            code=exc.code,
            message=exc.provider_message,
            retryable=False,
            handle=exc.handle.model_dump(mode="json"),
        )
    if isinstance(exc, GenerationError):
        return ErrorInfo(code=exc.code, message=str(exc), retryable=exc.retryable)
    if isinstance(exc, ApiError):
        return ErrorInfo(code="upstream_error", message=exc.message, retryable=True)
    return ErrorInfo(code="internal_error", message="Unexpected internal error", retryable=False)
