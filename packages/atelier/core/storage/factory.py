"""Build the configured ArtifactStore."""

from __future__ import annotations

import logging

import httpx

from atelier.core.config.models import StorageConfig
from atelier.core.storage.local import LocalArtifactStore
from atelier.core.storage.protocols import ArtifactStore
from atelier.core.storage.supabase import SupabaseArtifactStore

logger = logging.getLogger(__name__)


def build_store(
    config: StorageConfig,
    *,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ArtifactStore:
    """Create the store selected by ``config.backend``.

    Raises:
        ValueError: If the Supabase backend is selected without URL or key
    """
    if config.backend == "supabase":
        if not config.supabase_url or config.service_role_key is None:
            raise ValueError(
                "Supabase storage requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
            )
        logger.debug("Using Supabase storage bucket %s", config.bucket)
        return SupabaseArtifactStore(
            config.supabase_url,
            config.service_role_key,
            bucket=config.bucket,
            timeout=timeout,
            transport=transport,
        )

    logger.debug("Using local storage at %s", config.local_root)
    return LocalArtifactStore(config.local_root, public_base_url=config.public_base_url)
