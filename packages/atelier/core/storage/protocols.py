"""Durable artifact storage capability."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ArtifactStore(Protocol):
    """Any durable blob store that returns a publicly resolvable URL.

    Implementations raise ``StorageError`` on failure.
    """

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """Persist bytes at path and return the public URL."""
        ...
