"""Generation pipeline: request -> compiled payload -> provider -> stored artifact.

The orchestrator lives in ``atelier.core.generation.orchestrator`` and is not
re-exported here, since storage backends import this package's errors.
"""

from atelier.core.generation.catalogue import (
    default_target,
    fallback_target,
    fallback_targets,
    target_for,
)
from atelier.core.generation.compiler import compile_request
from atelier.core.generation.credentials import (
    Credential,
    CredentialPool,
    Endpoint,
    ProviderRegistry,
)
from atelier.core.generation.dispatch import ClientFactory, Dispatcher, ProviderResponse
from atelier.core.generation.errors import (
    AllProvidersFailed,
    CompileError,
    DispatchError,
    ErrorInfo,
    GenerationError,
    JobFailed,
    JobTimedOut,
    ProviderUnavailable,
    ResultDecodeError,
    StorageDegraded,
    StorageError,
    describe_error,
)
from atelier.core.generation.finalize import (
    HostedArtifactRef,
    InlineArtifactRef,
    RemoteArtifactRef,
    ResultFinalizer,
    StoredArtifactRef,
)
from atelier.core.generation.jobs import (
    JobHandle,
    JobTracker,
    OperationHandle,
    PollPolicy,
    QueueHandle,
    parse_handle,
)
from atelier.core.generation.models import (
    CompiledPayload,
    DispatchMode,
    GenerationKind,
    GenerationRequest,
    MediaRef,
    MediaType,
    ProviderFamily,
    ProviderTarget,
    VideoEffect,
)
from atelier.core.generation.results import MediaSource, extract_media

__all__ = [
    # Models
    "CompiledPayload",
    "DispatchMode",
    "GenerationKind",
    "GenerationRequest",
    "MediaRef",
    "MediaType",
    "ProviderFamily",
    "ProviderTarget",
    "VideoEffect",
    # Compile
    "compile_request",
    "default_target",
    "fallback_target",
    "fallback_targets",
    "target_for",
    # Dispatch
    "ClientFactory",
    "Credential",
    "CredentialPool",
    "Dispatcher",
    "Endpoint",
    "ProviderRegistry",
    "ProviderResponse",
    # Jobs and results
    "JobHandle",
    "JobTracker",
    "MediaSource",
    "OperationHandle",
    "PollPolicy",
    "QueueHandle",
    "extract_media",
    "parse_handle",
    # Finalize
    "HostedArtifactRef",
    "InlineArtifactRef",
    "RemoteArtifactRef",
    "ResultFinalizer",
    "StoredArtifactRef",
    # Errors
    "AllProvidersFailed",
    "CompileError",
    "DispatchError",
    "ErrorInfo",
    "GenerationError",
    "JobFailed",
    "JobTimedOut",
    "ProviderUnavailable",
    "ResultDecodeError",
    "StorageDegraded",
    "StorageError",
    "describe_error",
]
