"""Result finalizer: MediaSource -> StoredArtifactRef.

Durability is best-effort. When the store fails, the artifact comes back
inline as a data URI; when the provider URL cannot be fetched, the URL itself
comes back. The discriminated ``StoredArtifactRef`` tells callers which one
they got. ``require_durable=True`` turns both degradations into
``StorageDegraded``.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from atelier.core.api.http.errors import ApiError
from atelier.core.generation.dispatch import Dispatcher
from atelier.core.generation.errors import StorageDegraded, StorageError
from atelier.core.generation.models import Artifact
from atelier.core.generation.results import MediaSource
from atelier.core.utils.encoding import build_data_uri, extension_for, sniff_content_type

if TYPE_CHECKING:
    from atelier.core.storage.protocols import ArtifactStore

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]+")


class HostedArtifactRef(BaseModel):
    """Durably stored artifact."""

    model_config = ConfigDict(frozen=True)

    type: Literal["hosted"] = "hosted"
    url: str
    path: str
    durable: bool = True

    @property
    def href(self) -> str:
        return self.url


class InlineArtifactRef(BaseModel):
    """Storage failed; the artifact is returned as a self-contained data URI."""

    model_config = ConfigDict(frozen=True)

    type: Literal["inline"] = "inline"
    data_uri: str = Field(repr=False)
    reason: str
    durable: bool = False

    @property
    def href(self) -> str:
        return self.data_uri


class RemoteArtifactRef(BaseModel):
    """The provider URL could not be fetched; it is returned as-is and may expire."""

    model_config = ConfigDict(frozen=True)

    type: Literal["remote"] = "remote"
    url: str
    reason: str
    durable: bool = False

    @property
    def href(self) -> str:
        return self.url


StoredArtifactRef = Annotated[
    HostedArtifactRef | InlineArtifactRef | RemoteArtifactRef, Field(discriminator="type")
]

stored_ref_adapter: TypeAdapter[HostedArtifactRef | InlineArtifactRef | RemoteArtifactRef] = (
    TypeAdapter(StoredArtifactRef)
)


def owner_segment(owner_scope: str | None) -> str:
    """Filesystem/URL safe owner folder name."""
    cleaned = _UNSAFE_SEGMENT.sub("-", (owner_scope or "").strip()).strip(".-")
    return cleaned or ANONYMOUS_OWNER


class ResultFinalizer:
    """Decodes or fetches media and persists it to an ArtifactStore.

    Args:
        store: Durable store
        dispatcher: Used to fetch remote media
        require_durable: Raise StorageDegraded instead of returning a non-durable ref
        clock: Returns epoch seconds, injectable for tests
        token: Returns the random suffix for object names
    """

    def __init__(
        self,
        store: ArtifactStore,
        dispatcher: Dispatcher,
        *,
        require_durable: bool = False,
        clock: Callable[[], float] = time.time,
        token: Callable[[], str] = lambda: secrets.token_hex(4),
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.require_durable = require_durable
        self._clock = clock
        self._token = token

    def artifact_path(self, owner_scope: str | None, artifact: Artifact) -> str:
        """``{owner}/{images|videos|audio}/{epoch_ms}-{8 hex}.{ext}``"""
        epoch_ms = int(self._clock() * 1000)
        ext = extension_for(artifact.content_type)
        return (
            f"{owner_segment(owner_scope)}/{artifact.media_type.folder}/"
            f"{epoch_ms}-{self._token()}.{ext}"
        )

    async def load(self, source: MediaSource) -> Artifact:
        """Materialize a MediaSource into bytes.

        Raises:
            ApiError: If a remote URL cannot be fetched
            ValueError: If the response body is empty
        """
        default_type = source.media_type.default_content_type
        if source.data is not None:
            data = source.data
            declared = source.content_type
        else:
            data, declared = await self.dispatcher.fetch(source.url or "", source.credential)
            if not data:
                raise ValueError(f"Empty body fetched from {source.url}")

        content_type = (declared or "").split(";", 1)[0].strip().lower()
        if not content_type.startswith(("image/", "video/", "audio/")):
            content_type = sniff_content_type(data, default_type)
        return Artifact(data=data, content_type=content_type, media_type=source.media_type)

    async def finalize(
        self, source: MediaSource, owner_scope: str | None
    ) -> HostedArtifactRef | InlineArtifactRef | RemoteArtifactRef:
        """Persist the media and return exactly one reference to it.

        Raises:
            StorageDegraded: Only when require_durable is set and storage or fetch failed
        """
        try:
            artifact = await self.load(source)
        except (ApiError, ValueError) as exc:
            reason = f"fetch failed: {exc}"
            if self.require_durable:
                raise StorageDegraded(f"Could not fetch artifact: {exc}", cause=exc) from exc
            logger.warning("Returning provider URL for %s; %s", source.url, reason)
            return RemoteArtifactRef(url=source.url or "", reason=reason)

        path = self.artifact_path(owner_scope, artifact)
        try:
            url = await self.store.put(path, artifact.data, artifact.content_type)
        except StorageError as exc:
            if self.require_durable:
                raise StorageDegraded(f"Storage failed for {path}: {exc}", cause=exc) from exc
            logger.warning(
                "Storage failed for %s (%d bytes); returning inline artifact: %s",
                path,
                artifact.size,
                exc,
            )
            return InlineArtifactRef(
                data_uri=build_data_uri(artifact.data, artifact.content_type), reason=str(exc)
            )

        logger.info("Stored %s artifact at %s", artifact.media_type.value, path)
        return HostedArtifactRef(url=url, path=path)
