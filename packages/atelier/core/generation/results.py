"""Normalization of heterogeneous provider responses into one MediaSource."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from atelier.core.generation.credentials import Credential
from atelier.core.generation.dispatch import ProviderResponse
from atelier.core.generation.errors import ResultDecodeError
from atelier.core.generation.models import MediaType
from atelier.core.utils.encoding import data_uri_mime, decode_base64, is_data_uri

_MEDIA_PREFIXES = ("image/", "video/", "audio/")


class MediaSource(BaseModel):
    """Where the generated media lives: inline bytes or a remote URL.

    ``credential`` is set when the URL is hosted by the provider and must be
    fetched with the same key (e.g. Veo file URIs).
    """

    model_config = ConfigDict(frozen=True)

    media_type: MediaType
    url: str | None = None
    data: bytes | None = Field(default=None, repr=False)
    content_type: str | None = None
    credential: Credential | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _one_location(self) -> MediaSource:
        if (self.url is None) == (self.data is None):
            raise ValueError("MediaSource needs exactly one of url or data")
        return self

    @property
    def is_inline(self) -> bool:
        return self.data is not None


def _dig(obj: Any, *keys: str | int) -> Any:
    for key in keys:
        if isinstance(key, int):
            if not isinstance(obj, list) or len(obj) <= key:
                return None
            obj = obj[key]
        else:
            if not isinstance(obj, dict):
                return None
            obj = obj.get(key)
        if obj is None:
            return None
    return obj


def _url_or_nested(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict):
        url = value.get("url")
        if isinstance(url, str) and url:
            return url
    return None


# Ordered candidates for a media URL in provider JSON bodies.
_URL_PATHS: tuple[tuple[str | int, ...], ...] = (
    ("images", 0),
    ("image",),
    ("video",),
    ("video_url",),
    ("audio_url",),
    ("audio",),
    ("audio_file",),
    ("output",),
    ("data", 0, "url"),
)


def _from_url_value(value: str, media_type: MediaType) -> MediaSource:
    if is_data_uri(value):
        return MediaSource(
            media_type=media_type,
            data=decode_base64(value),
            content_type=data_uri_mime(value) or media_type.default_content_type,
        )
    return MediaSource(media_type=media_type, url=value)


def _gemini_inline(body: dict[str, Any], media_type: MediaType) -> MediaSource | None:
    for candidate in body.get("candidates") or []:
        for part in _dig(candidate, "content", "parts") or []:
            if not isinstance(part, dict):
                continue
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                return MediaSource(
                    media_type=media_type,
                    data=decode_base64(inline["data"]),
                    content_type=inline.get("mimeType") or inline.get("mime_type"),
                )
    return None


def _veo_sample(body: dict[str, Any], media_type: MediaType) -> MediaSource | None:
    response = body.get("response", body)
    uri = _dig(response, "generateVideoResponse", "generatedSamples", 0, "video", "uri")
    if isinstance(uri, str) and uri:
        return MediaSource(media_type=media_type, url=uri)
    return None


def extract_from_json(body: Any, media_type: MediaType) -> MediaSource | None:
    """Find media in a decoded JSON body, or None if there is none (yet).

    Raises:
        ResultDecodeError: If inline media is present but not valid base64
    """
    try:
        return _find_media(body, media_type)
    except ValueError as e:
        raise ResultDecodeError(f"Provider returned undecodable media: {e}") from e


def _find_media(body: Any, media_type: MediaType) -> MediaSource | None:
    if not isinstance(body, dict):
        return None
    for path in _URL_PATHS:
        url = _url_or_nested(_dig(body, *path))
        if url:
            return _from_url_value(url, media_type)
    b64 = _dig(body, "data", 0, "b64_json")
    if isinstance(b64, str) and b64:
        return MediaSource(
            media_type=media_type, data=decode_base64(b64), content_type="image/png"
        )
    for extractor in _EXTRACTORS:
        source = extractor(body, media_type)
        if source is not None:
            return source
    return None


_EXTRACTORS: tuple[Callable[[dict[str, Any], MediaType], MediaSource | None], ...] = (
    _gemini_inline,
    _veo_sample,
)


def extract_media(
    response: ProviderResponse, media_type: MediaType, credential: Credential | None = None
) -> MediaSource:
    """Normalize a provider response into a MediaSource.

    Args:
        response: Successful provider response
        media_type: Expected media type
        credential: Credential to attach when the media URL needs provider auth

    Raises:
        ResultDecodeError: If the response contains no recognizable media
    """
    ctype = response.content_type.split(";", 1)[0].strip().lower()
    if ctype.startswith(_MEDIA_PREFIXES) and response.content:
        return MediaSource(media_type=media_type, data=response.content, content_type=ctype)

    source = extract_from_json(response.json_body, media_type)
    if source is None:
        raise ResultDecodeError(
            f"No {media_type.value} found in response from {response.endpoint}"
        )
    if credential is not None and source.url is not None and _needs_auth(source.url, response):
        source = source.model_copy(update={"credential": credential})
    return source


def _needs_auth(url: str, response: ProviderResponse) -> bool:
    try:
        return httpx.URL(url).host == httpx.URL(response.base_url).host
    except httpx.InvalidURL:
        return False
