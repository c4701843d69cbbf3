"""Shared utilities for Atelier."""

from atelier.core.utils.encoding import (
    build_data_uri,
    decode_base64,
    encode_base64,
    extension_for,
    strip_data_url_prefix,
)
from atelier.core.utils.logging import configure_logging, get_logger

__all__ = [
    "build_data_uri",
    "configure_logging",
    "decode_base64",
    "encode_base64",
    "extension_for",
    "get_logger",
    "strip_data_url_prefix",
]
