"""URL and body helpers for the HTTP client."""

from __future__ import annotations

from urllib.parse import urljoin


def join_url(base_url: str, path: str) -> str:
    """Resolve a provider path against an endpoint base URL.

    The base keeps its own path (``.../v1beta`` + ``models/x:predictLongRunning``
    stays under ``v1beta``). Absolute URLs, such as CDN links handed back by
    a provider, are returned unchanged.
    """
    if path.startswith(("http://", "https://")):
        return path
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(base, path.lstrip("/"))


def safe_snippet(content: bytes, limit: int) -> str:
    """UTF-8 prefix of a body for error messages; binary bytes are replaced."""
    if not content:
        return ""
    return content[:limit].decode("utf-8", errors="replace")
