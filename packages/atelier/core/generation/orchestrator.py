"""End-to-end orchestration: compile -> dispatch or track -> finalize."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from atelier.core.config.models import AppConfig
from atelier.core.generation.catalogue import default_target, fallback_targets, target_for
from atelier.core.generation.compiler import compile_request
from atelier.core.generation.credentials import CredentialPool, ProviderRegistry
from atelier.core.generation.dispatch import ClientFactory, Dispatcher
from atelier.core.generation.errors import (
    AllProvidersFailed,
    DispatchError,
    ErrorInfo,
    JobFailed,
    ProviderUnavailable,
    describe_error,
)
from atelier.core.generation.finalize import (
    HostedArtifactRef,
    InlineArtifactRef,
    RemoteArtifactRef,
    ResultFinalizer,
)
from atelier.core.generation.jobs import (
    JobHandle,
    JobState,
    JobTracker,
    OperationHandle,
    PollPolicy,
    QueueHandle,
    parse_handle,
)
from atelier.core.generation.models import (
    CompiledPayload,
    DispatchMode,
    GenerationRequest,
    ProviderFamily,
    ProviderTarget,
)
from atelier.core.generation.results import MediaSource, extract_media
from atelier.core.storage.factory import build_store
from atelier.core.storage.protocols import ArtifactStore
from atelier.core.utils.logging import get_logger

logger = logging.getLogger(__name__)

ArtifactRef = HostedArtifactRef | InlineArtifactRef | RemoteArtifactRef


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class StartResponse(_CamelModel):
    """``{artifactUrl}`` for synchronous targets, ``{handle, status: "processing"}`` otherwise."""

    status: Literal["completed", "processing"]
    artifact_url: str | None = None
    artifact: ArtifactRef | None = None
    handle: JobHandle | None = None


class StatusResponse(_CamelModel):
    """Result of a manual re-check: ``{done, artifactUrl?, error?}``."""

    done: bool
    artifact_url: str | None = None
    artifact: ArtifactRef | None = None
    error: ErrorInfo | None = None


class GenerationOrchestrator:
    """Runs one request end to end. Holds only read-only collaborators.

    Args:
        registry: Credential pools per family and mode
        dispatcher: Provider HTTP dispatcher
        finalizer: Persists results
        tracker: Async job tracker (defaults to one sharing the dispatcher)
        poll_policies: Poll budget per family
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        dispatcher: Dispatcher,
        finalizer: ResultFinalizer,
        *,
        tracker: JobTracker | None = None,
        poll_policies: Mapping[ProviderFamily, PollPolicy] | None = None,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.finalizer = finalizer
        self.tracker = tracker or JobTracker(dispatcher)
        self.poll_policies = dict(poll_policies or {})

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        store: ArtifactStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> GenerationOrchestrator:
        """Wire every collaborator from application config."""
        clients = ClientFactory(config.http, transport=transport)
        dispatcher = Dispatcher(clients)
        if store is None:
            store = build_store(
                config.storage,
                timeout=httpx.Timeout(config.http.timeout_s, connect=config.http.connect_timeout_s),
                transport=transport,
            )
        finalizer = ResultFinalizer(
            store, dispatcher, require_durable=config.storage.require_durable
        )
        policies = {
            family: PollPolicy(
                interval_s=config.polling_for(family.value).interval_s,
                max_attempts=config.polling_for(family.value).max_attempts,
            )
            for family in ProviderFamily
        }
        return cls(
            ProviderRegistry.from_config(config),
            dispatcher,
            finalizer,
            poll_policies=policies,
        )

    def policy_for(self, family: ProviderFamily) -> PollPolicy:
        return self.poll_policies.get(family) or PollPolicy()

    def resolve_target(
        self,
        request: GenerationRequest,
        *,
        family: ProviderFamily | str | None = None,
        use_fallback: bool = False,
    ) -> ProviderTarget:
        """Pick the provider target for a request.

        Raises:
            ProviderUnavailable: If no available family can serve the request as asked
        """
        if use_fallback:
            for target in fallback_targets(request.kind):
                if self.registry.is_available(target.family):
                    return target
            raise ProviderUnavailable("fallback", f"no available fallback for '{request.kind}'")
        if family is not None:
            target = target_for(request.kind, family, request.effect)
            if target is None:
                raise ProviderUnavailable(str(family), f"does not serve '{request.kind}'")
            return target
        return default_target(request.kind, request.effect)

    def compile(
        self,
        request: GenerationRequest,
        *,
        family: ProviderFamily | str | None = None,
        use_fallback: bool = False,
    ) -> CompiledPayload:
        target = self.resolve_target(request, family=family, use_fallback=use_fallback)
        return compile_request(request, target)

    async def generate(
        self,
        request: GenerationRequest,
        *,
        family: ProviderFamily | str | None = None,
        use_fallback: bool = False,
    ) -> ArtifactRef:
        """Run a request to completion and return its single stored reference."""
        payload = self.compile(request, family=family, use_fallback=use_fallback)
        pool = self.registry.pool(payload.target.family, payload.target.mode)
        log = get_logger(__name__, kind=payload.kind, target=str(payload.target))
        log.info("Generating %s via %s", payload.kind, payload.target)

        if payload.target.mode == DispatchMode.SYNC:
            source = await self._run_sync(payload, pool)
        else:
            source = await self.tracker.submit_and_await(
                payload, pool, self.policy_for(payload.target.family)
            )
        return await self.finalizer.finalize(source, request.owner_id)

    async def start(
        self,
        request: GenerationRequest,
        *,
        family: ProviderFamily | str | None = None,
        use_fallback: bool = False,
    ) -> StartResponse:
        """Finish synchronous requests immediately; submit async ones and return the handle."""
        payload = self.compile(request, family=family, use_fallback=use_fallback)
        pool = self.registry.pool(payload.target.family, payload.target.mode)

        if payload.target.mode == DispatchMode.SYNC:
            source = await self._run_sync(payload, pool)
            ref = await self.finalizer.finalize(source, request.owner_id)
            return StartResponse(status="completed", artifact_url=ref.href, artifact=ref)

        handle = await self.tracker.submit(payload, pool)
        return StartResponse(status="processing", handle=handle)

    async def check(
        self,
        handle: OperationHandle | QueueHandle | Mapping[str, Any] | str,
        owner_id: str | None = None,
    ) -> StatusResponse:
        """Poll a retained handle once and finalize it if the job is done."""
        if not isinstance(handle, OperationHandle | QueueHandle):
            handle = parse_handle(handle)
        mode = DispatchMode.OPERATION if isinstance(handle, OperationHandle) else DispatchMode.QUEUE
        pool = self.registry.pool(handle.family, mode)

        try:
            status = await self.tracker.check(handle, pool)
        except (DispatchError, AllProvidersFailed) as exc:
            logger.warning("Status check failed: %s", exc)
            return StatusResponse(done=False, error=describe_error(exc))

        if status.state == JobState.FAILED:
            failure = JobFailed(handle, status.error or "provider reported failure")
            return StatusResponse(done=True, error=describe_error(failure))
        if not status.done or status.source is None:
            return StatusResponse(done=False)

        ref = await self.finalizer.finalize(status.source, owner_id)
        return StatusResponse(done=True, artifact_url=ref.href, artifact=ref)

    async def _run_sync(self, payload: CompiledPayload, pool: CredentialPool) -> MediaSource:
        resp = await self.dispatcher.dispatch_sync(payload, pool)
        return extract_media(resp, payload.media_type, pool.credential(resp.credential_id))
