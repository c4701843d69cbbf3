"""Asynchronous job tracking for providers that return a handle.

Two handle shapes are supported behind one loop:

- ``OperationHandle``: a provider-global operation name, polled at
  ``GET {name}`` through the whole pool with failover.
- ``QueueHandle``: a request id scoped to the submitting credential and
  endpoint. fal jobs are polled at their status URL and the result is fetched
  only once the status reads COMPLETED. SiliconFlow jobs are polled by POSTing
  the id to ``video/get-result``.

The loop sleeps a fixed interval before each poll and gives up after
``max_attempts`` polls with ``JobTimedOut``. Failed poll calls are logged and
counted but never end the job.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from atelier.core.generation.credentials import CredentialPool
from atelier.core.generation.dispatch import Dispatcher, ProviderResponse
from atelier.core.generation.errors import (
    AllProvidersFailed,
    DispatchError,
    JobFailed,
    JobTimedOut,
    ResultDecodeError,
)
from atelier.core.generation.models import (
    CompiledPayload,
    DispatchMode,
    MediaType,
    ProviderFamily,
)
from atelier.core.generation.results import MediaSource, extract_from_json, extract_media

logger = logging.getLogger(__name__)

_FAILED_QUEUE_STATUSES = frozenset({"FAILED", "ERROR", "CANCELLED"})


class OperationHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["operation"] = "operation"
    family: ProviderFamily
    media_type: MediaType
    name: str


class QueueHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["queue"] = "queue"
    family: ProviderFamily
    media_type: MediaType
    request_id: str
    model: str
    endpoint: str
    credential_id: str
    status_url: str | None = None
    response_url: str | None = None

    @property
    def status_path(self) -> str:
        """Where to poll the job status. Absolute when the provider issued one."""
        return self.status_url or f"{self.model}/requests/{self.request_id}/status"

    @property
    def result_path(self) -> str:
        """Where to fetch the finished result."""
        return self.response_url or f"{self.model}/requests/{self.request_id}"


JobHandle = Annotated[OperationHandle | QueueHandle, Field(discriminator="type")]

_HANDLE_ADAPTER: TypeAdapter[OperationHandle | QueueHandle] = TypeAdapter(JobHandle)


def parse_handle(data: Any) -> OperationHandle | QueueHandle:
    """Validate a retained handle (dict or JSON string) back into a JobHandle."""
    if isinstance(data, str | bytes):
        return _HANDLE_ADAPTER.validate_json(data)
    return _HANDLE_ADAPTER.validate_python(data)


class PollPolicy(BaseModel):
    """Fixed-interval poll budget. Wall time is interval_s x max_attempts."""

    model_config = ConfigDict(frozen=True)

    interval_s: float = Field(default=5.0, ge=0.0)
    max_attempts: int = Field(default=180, gt=0)


class JobState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.SUBMITTED: frozenset({JobState.POLLING}),
    JobState.POLLING: frozenset({JobState.DONE, JobState.FAILED, JobState.TIMED_OUT}),
    JobState.DONE: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TIMED_OUT: frozenset(),
}


class Job(BaseModel):
    """Provider-side work being awaited. Lives only inside the tracking coroutine."""

    handle: JobHandle
    state: JobState = JobState.SUBMITTED
    polls: int = 0
    failed_polls: int = 0

    def transition(self, new_state: JobState) -> None:
        """Move to new_state.

        Raises:
            ValueError: If the transition is not allowed
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Illegal job transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]


class JobStatus(BaseModel):
    """Result of a single poll."""

    model_config = ConfigDict(frozen=True)

    state: JobState
    source: MediaSource | None = None
    error: str | None = None

    @property
    def done(self) -> bool:
        return self.state == JobState.DONE


_PENDING = JobStatus(state=JobState.POLLING)


class JobTracker:
    """Submits async jobs and polls them to a terminal state.

    Args:
        dispatcher: Dispatcher used for submit and poll calls
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.dispatcher = dispatcher
        self._sleep = sleep

    async def submit(
        self, payload: CompiledPayload, pool: CredentialPool
    ) -> OperationHandle | QueueHandle:
        """Submit a compiled payload and return the provider-issued handle.

        Raises:
            ValueError: If the payload targets a synchronous provider
            ResultDecodeError: If the submit response carries no handle
        """
        mode = payload.target.mode
        if mode == DispatchMode.SYNC:
            raise ValueError("Synchronous targets have no job to track")

        resp = await self.dispatcher.dispatch_sync(payload, pool)
        body = resp.json_body if isinstance(resp.json_body, dict) else {}

        handle: OperationHandle | QueueHandle
        if mode == DispatchMode.OPERATION:
            name = body.get("name")
            if not name:
                raise ResultDecodeError(f"No operation name in response from {resp.endpoint}")
            handle = OperationHandle(
                family=payload.target.family, media_type=payload.media_type, name=str(name)
            )
        else:
            request_id = body.get("request_id") or body.get("requestId") or body.get("id")
            if not request_id:
                raise ResultDecodeError(f"No request id in response from {resp.endpoint}")
            handle = QueueHandle(
                family=payload.target.family,
                media_type=payload.media_type,
                request_id=str(request_id),
                model=payload.target.model,
                endpoint=resp.endpoint,
                credential_id=resp.credential_id,
                status_url=_optional_url(body.get("status_url")),
                response_url=_optional_url(body.get("response_url")),
            )
        logger.info("Submitted %s job %s", payload.kind, _describe(handle))
        return handle

    async def check(self, handle: OperationHandle | QueueHandle, pool: CredentialPool) -> JobStatus:
        """Poll once.

        Raises:
            DispatchError: If the poll call failed terminally
            AllProvidersFailed: If no pair in the pool could serve the poll
            ResultDecodeError: If a finished job carries no recognizable media
        """
        if isinstance(handle, OperationHandle):
            resp = await self.dispatcher.send("GET", handle.name, pool)
            return self._operation_status(handle, resp, pool)

        scoped = pool.restricted_to(handle.credential_id, handle.endpoint)
        if handle.family == ProviderFamily.SILICONFLOW:
            resp = await self.dispatcher.send(
                "POST", "video/get-result", scoped, json_body={"requestId": handle.request_id}
            )
            return self._siliconflow_status(handle, resp)

        resp = await self.dispatcher.send("GET", handle.status_path, scoped)
        status = self._queue_status(resp)
        if status is not None:
            return status
        return await self._queue_result(handle, scoped)

    async def await_job(
        self,
        handle: OperationHandle | QueueHandle,
        pool: CredentialPool,
        policy: PollPolicy,
    ) -> MediaSource:
        """Poll until done, failed, or the attempt budget runs out.

        Raises:
            JobFailed: The provider reported an error for the job
            JobTimedOut: The budget ran out; the job may still finish
        """
        job = Job(handle=handle)
        job.transition(JobState.POLLING)

        while job.polls < policy.max_attempts:
            await self._sleep(policy.interval_s)
            job.polls += 1
            try:
                status = await self.check(handle, pool)
            except (DispatchError, AllProvidersFailed) as exc:
                job.failed_polls += 1
                logger.warning(
                    "Poll %d/%d for %s failed: %s",
                    job.polls,
                    policy.max_attempts,
                    _describe(handle),
                    exc,
                )
                continue

            if status.state == JobState.DONE and status.source is not None:
                job.transition(JobState.DONE)
                logger.info("Job %s done after %d poll(s)", _describe(handle), job.polls)
                return status.source
            if status.state == JobState.FAILED:
                job.transition(JobState.FAILED)
                raise JobFailed(handle, status.error or "provider reported failure")

        job.transition(JobState.TIMED_OUT)
        logger.warning(
            "Job %s timed out after %d poll(s) (%d failed)",
            _describe(handle),
            job.polls,
            job.failed_polls,
        )
        raise JobTimedOut(handle, job.polls)

    async def submit_and_await(
        self, payload: CompiledPayload, pool: CredentialPool, poll_policy: PollPolicy
    ) -> MediaSource:
        """Submit and poll to completion."""
        handle = await self.submit(payload, pool)
        return await self.await_job(handle, pool, poll_policy)

    def _operation_status(
        self, handle: OperationHandle, resp: ProviderResponse, pool: CredentialPool
    ) -> JobStatus:
        body = resp.json_body if isinstance(resp.json_body, dict) else {}
        if not body.get("done"):
            return _PENDING
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            return JobStatus(state=JobState.FAILED, error=message or "operation failed")
        source = extract_media(resp, handle.media_type, pool.credential(resp.credential_id))
        return JobStatus(state=JobState.DONE, source=source)

    def _queue_status(self, resp: ProviderResponse) -> JobStatus | None:
        """Status of a fal queue job, or None once its result is ready to fetch."""
        body = resp.json_body if isinstance(resp.json_body, dict) else {}
        status = str(body.get("status") or "").upper()
        if status in _FAILED_QUEUE_STATUSES:
            return JobStatus(state=JobState.FAILED, error=_error_text(body, status))
        if status == "COMPLETED":
            # fal reports model errors on a completed status.
            if body.get("error"):
                return JobStatus(state=JobState.FAILED, error=_error_text(body, status))
            return None
        return _PENDING

    async def _queue_result(self, handle: QueueHandle, scoped: CredentialPool) -> JobStatus:
        try:
            resp = await self.dispatcher.send("GET", handle.result_path, scoped)
        except DispatchError as exc:
            # A 4xx for a completed job is the model's own validation error.
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                return JobStatus(state=JobState.FAILED, error=str(exc))
            raise
        body = resp.json_body if isinstance(resp.json_body, dict) else {}
        source = extract_from_json(body, handle.media_type)
        if source is not None:
            return JobStatus(state=JobState.DONE, source=source)
        if body.get("error") or body.get("detail"):
            return JobStatus(state=JobState.FAILED, error=_error_text(body, "completed"))
        raise ResultDecodeError(f"Queue job {handle.request_id} completed without media")

    def _siliconflow_status(self, handle: QueueHandle, resp: ProviderResponse) -> JobStatus:
        body = resp.json_body if isinstance(resp.json_body, dict) else {}
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        status = str(data.get("status") or "")
        if status == "Failed":
            return JobStatus(state=JobState.FAILED, error=str(data.get("reason") or "job failed"))
        if status != "Succeed":
            return _PENDING
        results = data.get("results") if isinstance(data.get("results"), dict) else {}
        url = results.get("video")
        if not isinstance(url, str) or not url:
            videos = results.get("videos")
            first = videos[0] if isinstance(videos, list) and videos else None
            url = first.get("url") if isinstance(first, dict) else None
        if not isinstance(url, str) or not url:
            raise ResultDecodeError(f"Queue job {handle.request_id} succeeded without a video")
        source = MediaSource(media_type=handle.media_type, url=url)
        return JobStatus(state=JobState.DONE, source=source)


def _optional_url(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _error_text(body: dict[str, Any], status: str) -> str:
    error = body.get("error") or body.get("detail")
    if isinstance(error, dict):
        error = error.get("message") or error
    return str(error) if error else f"queue job {status.lower()}"


def _describe(handle: OperationHandle | QueueHandle) -> str:
    if isinstance(handle, OperationHandle):
        return f"{handle.family.value}:{handle.name}"
    return f"{handle.family.value}:{handle.model}#{handle.request_id}"
