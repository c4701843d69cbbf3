"""Request, payload and artifact models for the generation layer."""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from atelier.core.utils.encoding import (
    build_data_uri,
    data_uri_mime,
    is_data_uri,
    is_remote_url,
    strip_data_url_prefix,
)

logger = logging.getLogger(__name__)


class ProviderFamily(str, Enum):
    """Logical provider a credential authorizes."""

    FAL = "fal"
    GOOGLE = "google"
    HUGGINGFACE = "huggingface"
    TOGETHER = "together"
    SILICONFLOW = "siliconflow"


class DispatchMode(str, Enum):
    """How a provider delivers results.

    SYNC returns the artifact in the response, QUEUE returns a credential-scoped
    request id, OPERATION returns a provider-global operation name.
    """

    SYNC = "sync"
    QUEUE = "queue"
    OPERATION = "operation"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"

    @property
    def folder(self) -> str:
        """Storage folder name for this media type."""
        return {"image": "images", "video": "videos", "audio": "audio"}[self.value]

    @property
    def default_content_type(self) -> str:
        return {"image": "image/png", "video": "video/mp4", "audio": "audio/mpeg"}[self.value]


class GenerationKind(str, Enum):
    """Creative operations with a dedicated template."""

    TEXT_TO_IMAGE = "text-to-image"
    INPAINT = "inpaint"
    OUTPAINT = "outpaint"
    CHANGE_BACKGROUND = "change-background"
    REMOVE_BACKGROUND = "remove-background"
    STYLE_TRANSFER = "style-transfer"
    RELIGHT = "relight"
    UPSCALE = "upscale"
    COMPOSER = "composer"
    VIRTUAL_TRY_ON = "virtual-try-on"
    FASHION_FACTORY = "fashion-factory"
    TUNER = "tuner"
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"
    VIDEO_EXTEND = "video-extend"
    LIP_SYNC = "lip-sync"
    TALKING_AVATAR = "talking-avatar"
    VIDEO_EFFECTS = "video-effects"
    SOUND_EFFECT = "sound-effect"
    MUSIC = "music"
    SPEECH = "speech"

    @property
    def media_type(self) -> MediaType:
        return _KIND_MEDIA.get(self, MediaType.IMAGE)


_KIND_MEDIA: dict[GenerationKind, MediaType] = {
    GenerationKind.TEXT_TO_VIDEO: MediaType.VIDEO,
    GenerationKind.IMAGE_TO_VIDEO: MediaType.VIDEO,
    GenerationKind.VIDEO_EXTEND: MediaType.VIDEO,
    GenerationKind.LIP_SYNC: MediaType.VIDEO,
    GenerationKind.TALKING_AVATAR: MediaType.VIDEO,
    GenerationKind.VIDEO_EFFECTS: MediaType.VIDEO,
    GenerationKind.SOUND_EFFECT: MediaType.AUDIO,
    GenerationKind.MUSIC: MediaType.AUDIO,
    GenerationKind.SPEECH: MediaType.AUDIO,
}

# Aliases accepted from older clients.
_KIND_ALIASES: dict[str, GenerationKind] = {
    "sound": GenerationKind.SOUND_EFFECT,
    "sound-effects": GenerationKind.SOUND_EFFECT,
    "tts": GenerationKind.SPEECH,
    "extension": GenerationKind.OUTPAINT,
    "extend-video": GenerationKind.VIDEO_EXTEND,
    "background-remover": GenerationKind.REMOVE_BACKGROUND,
    "change-backdrop": GenerationKind.CHANGE_BACKGROUND,
    "avatar": GenerationKind.TALKING_AVATAR,
}


def resolve_kind(value: str | GenerationKind) -> GenerationKind | None:
    """Return the known kind for a raw value, or None."""
    if isinstance(value, GenerationKind):
        return value
    raw = str(value).strip().lower().replace("_", "-")
    try:
        return GenerationKind(raw)
    except ValueError:
        return _KIND_ALIASES.get(raw)


class CameraMotion(str, Enum):
    STATIC = "static"
    PAN_LEFT = "pan-left"
    PAN_RIGHT = "pan-right"
    TILT_UP = "tilt-up"
    TILT_DOWN = "tilt-down"
    ZOOM_IN = "zoom-in"
    ZOOM_OUT = "zoom-out"
    DOLLY_IN = "dolly-in"
    DOLLY_OUT = "dolly-out"
    ORBIT = "orbit"
    CRANE_UP = "crane-up"
    HANDHELD = "handheld"


class VideoEffect(str, Enum):
    """Effects applied by the ``video-effects`` kind to a still image."""

    CAMERA_MOTION = "camera-motion"
    STYLE_TRANSFER = "style-transfer"
    SLOW_MOTION = "slow-motion"
    LOOP = "loop"
    REVERSE = "reverse"
    DEPTH = "depth"


class MediaRef(BaseModel):
    """Reference media supplied by the caller.

    ``value`` is a remote URL, a data URI, or raw base64 text. Plain strings
    validate directly into a MediaRef.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"value": data.strip()}
        return data

    @property
    def is_remote(self) -> bool:
        return is_remote_url(self.value)

    @property
    def is_data_uri(self) -> bool:
        return is_data_uri(self.value)

    def mime_type(self, default: str) -> str:
        """Declared mime type of a data URI, else ``default``."""
        if self.is_data_uri:
            return data_uri_mime(self.value) or default
        return default

    def as_url(self, default_mime: str = "image/png") -> str:
        """Present as a URL or data URI (the shape fal and most JSON APIs accept)."""
        if self.is_remote or self.is_data_uri:
            return self.value
        return f"data:{default_mime};base64,{self.value}"

    def as_base64(self) -> str:
        """Raw base64 payload. Only valid for inline media."""
        if self.is_remote:
            raise ValueError("Remote media has no inline base64 payload")
        return strip_data_url_prefix(self.value)

    @classmethod
    def from_bytes(cls, data: bytes, content_type: str) -> MediaRef:
        return cls(value=build_data_uri(data, content_type))


def _optional_number(v: Any) -> float | None:
    """Coerce numeric strings; drop values that are not finite numbers."""
    if v is None or isinstance(v, bool):
        return None
    try:
        number = float(v) if isinstance(v, int | float) else float(str(v).strip().rstrip("%"))
    except (ValueError, OverflowError):
        logger.debug("Ignoring non-numeric tuning value %r", v)
        return None
    if not math.isfinite(number):
        logger.debug("Ignoring non-finite tuning value %r", v)
        return None
    return number


def _optional_text(v: Any) -> str | None:
    """Scalars become stripped text; blanks and structured values are dropped."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, float):
        return f"{v:g}" if math.isfinite(v) else None
    if isinstance(v, str | int):
        return str(v).strip() or None
    logger.debug("Ignoring non-text tuning value %r", v)
    return None


def _usable_media(v: Any) -> bool:
    if isinstance(v, MediaRef):
        return True
    if isinstance(v, str):
        return bool(v.strip())
    if isinstance(v, dict):
        value = v.get("value")
        return isinstance(value, str) and bool(value.strip())
    return False


class GenerationRequest(BaseModel):
    """A structured creative request.

    Accepts snake_case or camelCase keys. Unknown keys and unusable tuning
    values (wrong type, blank, non-finite) are ignored rather than rejected.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    kind: GenerationKind | str = GenerationKind.TEXT_TO_IMAGE
    prompt: str = ""
    negative_prompt: str | None = None
    base_media: list[MediaRef] = Field(
        default_factory=list,
        validation_alias=AliasChoices("base_media", "baseMedia", "images"),
    )
    mask: MediaRef | None = Field(
        default=None, validation_alias=AliasChoices("mask", "maskUrl", "mask_url")
    )
    strength: float | None = None
    duration: float | None = None
    aspect_ratio: str | None = None
    direction: str | None = None
    expansion_amount: float | None = None
    camera_motion: CameraMotion | None = None
    effect: VideoEffect | None = None
    style: str | None = None
    lighting: str | None = None
    text: str | None = None
    owner_id: str | None = Field(
        default=None, validation_alias=AliasChoices("owner_id", "ownerId", "userId")
    )

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_value(cls, v: Any) -> Any:
        if v is None or isinstance(v, bool):
            return GenerationKind.TEXT_TO_IMAGE
        if isinstance(v, int | float):
            return str(v)
        if not isinstance(v, str):
            logger.debug("Ignoring non-text kind %r", v)
            return GenerationKind.TEXT_TO_IMAGE
        return v

    @field_validator("kind", mode="after")
    @classmethod
    def _normalize_kind(cls, v: GenerationKind | str) -> GenerationKind | str:
        known = resolve_kind(v)
        if known is not None:
            return known
        return str(v).strip().lower()

    @field_validator("prompt", mode="before")
    @classmethod
    def _prompt_text(cls, v: Any) -> str:
        return _optional_text(v) or ""

    @field_validator(
        "negative_prompt",
        "aspect_ratio",
        "direction",
        "style",
        "lighting",
        "text",
        "owner_id",
        mode="before",
    )
    @classmethod
    def _texts(cls, v: Any) -> str | None:
        return _optional_text(v)

    @field_validator("base_media", mode="before")
    @classmethod
    def _listify_media(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        if isinstance(v, str | dict | MediaRef):
            v = [v]
        if not isinstance(v, list | tuple):
            logger.debug("Ignoring unusable base media %r", v)
            return []
        return [m for m in v if _usable_media(m)]

    @field_validator("mask", mode="before")
    @classmethod
    def _mask(cls, v: Any) -> Any:
        # Forms without a mask send an empty string.
        return v if _usable_media(v) else None

    @field_validator("strength", "duration", "expansion_amount", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> float | None:
        return _optional_number(v)

    @field_validator("camera_motion", mode="before")
    @classmethod
    def _motion(cls, v: Any) -> Any:
        if v is None or isinstance(v, CameraMotion):
            return v
        raw = str(v).strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return CameraMotion(raw)
        except ValueError:
            logger.debug("Ignoring unknown camera motion %r", v)
            return None

    @field_validator("effect", mode="before")
    @classmethod
    def _effect(cls, v: Any) -> Any:
        if v is None or isinstance(v, VideoEffect):
            return v
        raw = str(v).strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return VideoEffect(raw)
        except ValueError:
            logger.debug("Ignoring unknown video effect %r", v)
            return None

    @property
    def known_kind(self) -> GenerationKind | None:
        """The kind as an enum member, or None for kinds without a template."""
        return self.kind if isinstance(self.kind, GenerationKind) else None

    @property
    def media_type(self) -> MediaType:
        kind = self.known_kind
        if kind is None:
            return MediaType.IMAGE
        # A depth pass renders a still depth map, not a clip.
        if kind == GenerationKind.VIDEO_EFFECTS and self.effect == VideoEffect.DEPTH:
            return MediaType.IMAGE
        return kind.media_type


class ProviderTarget(BaseModel):
    """Where a compiled request is sent."""

    model_config = ConfigDict(frozen=True)

    family: ProviderFamily
    model: str
    mode: DispatchMode = DispatchMode.SYNC

    def __str__(self) -> str:
        return f"{self.family.value}:{self.model} ({self.mode.value})"


class CompiledPayload(BaseModel):
    """Provider-shaped request body plus the final instruction text.

    One per (request, target). Re-targeting recompiles.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    target: ProviderTarget
    path: str
    body: dict[str, Any]
    instruction: str = Field(min_length=1)
    negative_prompt: str = ""
    media_type: MediaType = MediaType.IMAGE


class Artifact(BaseModel):
    """Finished media bytes, ephemeral until persisted."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    content_type: str
    media_type: MediaType

    @property
    def size(self) -> int:
        return len(self.data)
