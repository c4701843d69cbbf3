"""Static provider credentials as httpx auth flows.

Keys are attached inside the auth flow, after the client has logged the
request, so neither header nor query-parameter keys show up in logs.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Generator

import httpx
from pydantic import BaseModel, Field


class _StaticKeyAuth(httpx.Auth, BaseModel):
    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    api_key: str = Field(repr=False)

    @abstractmethod
    def apply(self, request: httpx.Request) -> None:
        """Attach the key to an outgoing request."""

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        self.apply(request)
        yield request


class ApiKeyAuth(_StaticKeyAuth):
    """Key sent in a header, optionally prefixed.

    Example:
        >>> ApiKeyAuth(header_name="Authorization", api_key="secret", prefix="Key")  # fal
        >>> ApiKeyAuth(header_name="x-goog-api-key", api_key="secret")  # Google
    """

    header_name: str
    prefix: str | None = None

    def apply(self, request: httpx.Request) -> None:
        value = f"{self.prefix} {self.api_key}" if self.prefix else self.api_key
        request.headers[self.header_name] = value


class QueryKeyAuth(_StaticKeyAuth):
    """Key sent as a query parameter (Google's ``?key=``)."""

    param_name: str = "key"

    def apply(self, request: httpx.Request) -> None:
        request.url = request.url.copy_merge_params({self.param_name: self.api_key})
