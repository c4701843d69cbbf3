from __future__ import annotations

import logging
import time
from collections.abc import Mapping

logger = logging.getLogger("atelier.core.api.http")

REDACTED = "***REDACTED***"


def redact_headers(headers: Mapping[str, str], names: tuple[str, ...]) -> dict[str, str]:
    """Copy of headers with the values of secret header names masked."""
    secret = {n.lower() for n in names}
    return {k: REDACTED if k.lower() in secret else v for k, v in headers.items()}


def log_attempt(
    method: str, url: str, attempt: int, headers: Mapping[str, str], redact: tuple[str, ...]
) -> float:
    """Log an outgoing request at DEBUG and return its start time.

    Credentials attached by an httpx auth flow are added after this point,
    so query-parameter keys never appear in ``url``.
    """
    logger.debug(
        "HTTP %s %s (attempt %d)",
        method,
        url,
        attempt,
        extra={"http_headers": redact_headers(headers, redact)},
    )
    return time.perf_counter()


def log_outcome(method: str, url: str, attempt: int, status: int, started: float) -> None:
    logger.debug(
        "HTTP %s %s -> %d in %dms (attempt %d)",
        method,
        url,
        status,
        int((time.perf_counter() - started) * 1000),
        attempt,
    )
