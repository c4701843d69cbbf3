"""Base64 and data URI helpers."""

from __future__ import annotations

import base64
import binascii
import mimetypes
import re

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*),", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")

# mimetypes knows most of these, but not consistently across platforms.
_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}


def strip_data_url_prefix(value: str) -> str:
    """Return the base64 payload of a data URI, or the input unchanged if it is raw base64."""
    idx = value.find("base64,")
    if idx != -1:
        return value[idx + len("base64,") :]
    return value


def is_data_uri(value: str) -> bool:
    return value.startswith("data:")


def is_remote_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def data_uri_mime(value: str) -> str | None:
    """Return the mime type declared by a data URI, if any."""
    match = _DATA_URI_RE.match(value)
    if match is None:
        return None
    return match.group("mime")


def decode_base64(value: str) -> bytes:
    """Decode raw base64 or a base64 data URI.

    Raises:
        ValueError: If the payload is not valid base64
    """
    clean = _WHITESPACE_RE.sub("", strip_data_url_prefix(value))
    # Providers occasionally drop padding.
    clean += "=" * (-len(clean) % 4)
    try:
        return base64.b64decode(clean, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_data_uri(data: bytes, content_type: str) -> str:
    """Build a ``data:<mime>;base64,...`` URI."""
    return f"data:{content_type};base64,{encode_base64(data)}"


def extension_for(content_type: str) -> str:
    """Map a content type to a file extension (without the dot)."""
    ctype = content_type.split(";", 1)[0].strip().lower()
    if ctype in _EXTENSIONS:
        return _EXTENSIONS[ctype]
    guessed = mimetypes.guess_extension(ctype)
    if guessed:
        return guessed.lstrip(".")
    return "bin"


_SIGNATURES: tuple[tuple[bytes, int, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", 0, "image/png"),
    (b"\xff\xd8\xff", 0, "image/jpeg"),
    (b"GIF8", 0, "image/gif"),
    (b"ftyp", 4, "video/mp4"),
    (b"\x1aE\xdf\xa3", 0, "video/webm"),
    (b"ID3", 0, "audio/mpeg"),
    (b"fLaC", 0, "audio/flac"),
    (b"OggS", 0, "audio/ogg"),
)


def sniff_content_type(data: bytes, default: str) -> str:
    """Guess a content type from magic bytes, falling back to default."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"
    for signature, offset, content_type in _SIGNATURES:
        if data[offset : offset + len(signature)] == signature:
            return content_type
    return default
