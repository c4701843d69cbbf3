"""Supabase Storage REST backend."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import SecretStr

from atelier.core.api.http.auth import ApiKeyAuth
from atelier.core.api.http.client import AsyncApiClient
from atelier.core.api.http.config import HttpClientConfig
from atelier.core.api.http.errors import ApiError
from atelier.core.api.http.retry import RetryPolicy
from atelier.core.generation.errors import StorageError

logger = logging.getLogger(__name__)


class SupabaseArtifactStore:
    """Uploads to ``/storage/v1/object/{bucket}/{path}`` with the service-role key.

    Args:
        url: Supabase project URL (e.g. "https://abc.supabase.co")
        service_role_key: Service-role key
        bucket: Public bucket name
        upsert: Overwrite existing objects
        retry_policy: Upload retry policy (defaults to retrying POST on 429/5xx)
        transport: Optional custom transport (useful for testing)
    """

    def __init__(
        self,
        url: str,
        service_role_key: SecretStr,
        *,
        bucket: str = "generations",
        upsert: bool = False,
        retry_policy: RetryPolicy | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.bucket = bucket
        self.upsert = upsert
        self._key = service_role_key
        self._timeout = timeout or httpx.Timeout(60.0, connect=10.0)
        self._transport = transport
        self._retry = retry_policy or RetryPolicy(allow_non_idempotent=True)

    def public_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes and return the object's public URL.

        Raises:
            StorageError: If the upload fails
        """
        key = self._key.get_secret_value()
        config = HttpClientConfig(
            base_url=self.url, timeout=self._timeout, headers={"apikey": key}
        )
        auth = ApiKeyAuth(header_name="Authorization", api_key=key, prefix="Bearer")
        try:
            async with AsyncApiClient(
                config, auth=auth, retry_policy=self._retry, transport=self._transport
            ) as client:
                await client.post(
                    f"/storage/v1/object/{self.bucket}/{quote(path)}",
                    content=data,
                    headers={
                        "Content-Type": content_type,
                        "x-upsert": "true" if self.upsert else "false",
                        "cache-control": "3600",
                    },
                )
        except ApiError as e:
            if not _is_duplicate(e):
                raise StorageError(f"Supabase upload of {path} failed: {e}") from e
            # Paths are unique per artifact: an existing object was written by an earlier attempt.
            logger.info("Object %s already exists; keeping the stored copy", path)

        url = self.public_url(path)
        logger.debug("Stored %d bytes at %s", len(data), url)
        return url


def _is_duplicate(error: ApiError) -> bool:
    # Supabase answers a duplicate key with 400 or 409 and a "Duplicate" body.
    if error.status_code not in (400, 409):
        return False
    body = (error.response_body_snippet or "").lower()
    return "duplicate" in body or "already exists" in body
