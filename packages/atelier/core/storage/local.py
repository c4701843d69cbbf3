"""Local directory backend using aiofiles.

Provides atomic writes via temp file + os.replace().
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path, PurePosixPath
from tempfile import NamedTemporaryFile

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from atelier.core.generation.errors import StorageError

logger = logging.getLogger(__name__)


class LocalArtifactStore:
    """Writes artifacts under a root directory.

    Args:
        root: Directory that holds the artifacts
        public_base_url: URL under which root is served. Without it, file:// URLs
            are returned.
    """

    def __init__(self, root: str | Path, public_base_url: str | None = None) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _target(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise StorageError(f"Refusing to write outside the store root: {path}")
        return self.root.joinpath(*rel.parts)

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        return self._target(path).as_uri()

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """Atomically write bytes and return the public URL.

        Raises:
            StorageError: If the file cannot be written
        """
        target = self._target(path)
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)

            loop = asyncio.get_running_loop()

            def create_temp_file() -> str:
                tmp = NamedTemporaryFile(mode="wb", dir=target.parent, delete=False)
                tmp_path = tmp.name
                tmp.close()
                return tmp_path

            tmp_path = await loop.run_in_executor(None, create_temp_file)
            try:
                async with aiofiles.open(tmp_path, mode="wb") as f:
                    await f.write(data)
                await loop.run_in_executor(None, os.replace, tmp_path, str(target))
            except OSError:
                try:
                    await aiofiles.os.unlink(tmp_path)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Local write of {path} failed: {e}") from e

        logger.debug("Stored %d bytes (%s) at %s", len(data), content_type, target)
        return self.public_url(path)
