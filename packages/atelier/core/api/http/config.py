from __future__ import annotations

import httpx
from pydantic import BaseModel, Field, field_validator

# Header names whose values never reach the logs.
SECRET_HEADERS: tuple[str, ...] = (
    "authorization",
    "x-goog-api-key",
    "apikey",
    "x-api-key",
    "cookie",
)


class HttpClientConfig(BaseModel):
    """Per-endpoint client settings.

    One config is built for every (credential, endpoint) call, so it only
    carries what differs between providers: the base URL, static headers
    (e.g. Supabase's ``apikey``) and the timeout.

    Args:
        base_url: Endpoint base URL (e.g. "https://queue.fal.run")
        timeout: HTTPX timeout; generation calls can hold the connection for minutes
        headers: Static headers sent with every request
        redact_headers: Header names masked in DEBUG logs (case-insensitive)
        max_error_body: Bytes of an error body kept on the raised ApiError
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    base_url: str
    timeout: httpx.Timeout = Field(default_factory=lambda: httpx.Timeout(120.0, connect=10.0))
    headers: dict[str, str] = Field(default_factory=dict)
    redact_headers: tuple[str, ...] = SECRET_HEADERS
    max_error_body: int = Field(default=4096, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v
