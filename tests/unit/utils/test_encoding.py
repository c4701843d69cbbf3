"""Tests for base64 and content type helpers."""

from __future__ import annotations

import pytest

from atelier.core.utils.encoding import (
    build_data_uri,
    data_uri_mime,
    decode_base64,
    extension_for,
    is_data_uri,
    is_remote_url,
    sniff_content_type,
    strip_data_url_prefix,
)


def test_decode_base64_restores_missing_padding() -> None:
    assert decode_base64("aGk") == b"hi"
    assert decode_base64("aGk=") == b"hi"


def test_decode_base64_accepts_data_uri_and_whitespace() -> None:
    assert decode_base64("data:text/plain;base64,aG Vs\nbG8=") == b"hello"


def test_decode_base64_rejects_garbage() -> None:
    with pytest.raises(ValueError, match="Invalid base64"):
        decode_base64("not*base64!")


def test_data_uri_helpers(png_bytes: bytes) -> None:
    uri = build_data_uri(png_bytes, "image/png")
    assert uri.startswith("data:image/png;base64,")
    assert is_data_uri(uri)
    assert not is_remote_url(uri)
    assert data_uri_mime(uri) == "image/png"
    assert decode_base64(strip_data_url_prefix(uri)) == png_bytes
    assert data_uri_mime("https://x.test/a.png") is None
    assert strip_data_url_prefix("QUJD") == "QUJD"


@pytest.mark.parametrize(
    ("content_type", "ext"),
    [
        ("image/png", "png"),
        ("image/jpeg", "jpg"),
        ("video/mp4; codecs=avc1", "mp4"),
        ("AUDIO/MPEG", "mp3"),
        ("application/x-unknown-thing", "bin"),
    ],
)
def test_extension_for(content_type: str, ext: str) -> None:
    assert extension_for(content_type) == ext


def test_sniff_content_type(png_bytes: bytes, mp4_bytes: bytes) -> None:
    assert sniff_content_type(png_bytes, "application/octet-stream") == "image/png"
    assert sniff_content_type(mp4_bytes, "application/octet-stream") == "video/mp4"
    assert sniff_content_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ", "x") == "image/webp"
    assert sniff_content_type(b"RIFF\x00\x00\x00\x00WAVEfmt ", "x") == "audio/wav"
    assert sniff_content_type(b"ID3\x04", "x") == "audio/mpeg"
    assert sniff_content_type(b"plain", "text/plain") == "text/plain"
