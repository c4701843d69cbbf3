"""Durable artifact storage backends."""

from atelier.core.storage.factory import build_store
from atelier.core.storage.local import LocalArtifactStore
from atelier.core.storage.protocols import ArtifactStore
from atelier.core.storage.supabase import SupabaseArtifactStore

__all__ = [
    "build_store",
    "ArtifactStore",
    "LocalArtifactStore",
    "SupabaseArtifactStore",
]
