from __future__ import annotations

import random

from pydantic import BaseModel, Field, model_validator

IDEMPOTENT_METHODS: tuple[str, ...] = ("GET", "HEAD", "OPTIONS", "DELETE")


class RetryPolicy(BaseModel):
    """How often one client call is repeated against the same endpoint.

    Provider dispatch uses ``RetryPolicy.none()``: failover to the next
    credential or endpoint replaces per-call retries, so a pair is never
    attempted twice. Media downloads keep the default; storage uploads
    also allow POST since they write a fresh object path.

    Args:
        max_attempts: Attempts including the first one
        base_delay_s: First backoff delay, doubled per attempt
        max_delay_s: Backoff cap
        jitter: Fraction of the delay randomized either way
        retry_on_status: Statuses worth repeating
        allow_non_idempotent: Also repeat POST/PUT/PATCH
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    base_delay_s: float = Field(default=0.25, ge=0.0)
    max_delay_s: float = Field(default=5.0, ge=0.0)
    jitter: float = Field(default=0.15, ge=0.0, le=1.0)
    retry_on_status: frozenset[int] = frozenset({429, 500, 502, 503, 504})
    allow_non_idempotent: bool = False

    @model_validator(mode="after")
    def _cap_not_below_base(self) -> RetryPolicy:
        if self.max_delay_s < self.base_delay_s:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return self

    @classmethod
    def none(cls) -> RetryPolicy:
        """Single attempt, no retries."""
        return cls(max_attempts=1)

    def allows_method(self, method: str) -> bool:
        return self.allow_non_idempotent or method.upper() in IDEMPOTENT_METHODS

    def compute_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter; ``attempt`` is the 1-based attempt that failed."""
        delay = min(self.max_delay_s, self.base_delay_s * 2 ** (attempt - 1))
        spread = delay * self.jitter
        return max(0.0, delay + random.uniform(-spread, spread))


def parse_retry_after_seconds(value: str | None) -> float | None:
    """Numeric Retry-After in seconds. HTTP-date values yield None."""
    try:
        seconds = float((value or "").strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None
