"""Configuration loading utilities with JSON and YAML support."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import SecretStr

from atelier.core.config.models import AppConfig, CredentialConfig, ProviderConfig

logger = logging.getLogger(__name__)

_DEFAULT_APP_CONFIG_PATH = Path("atelier.yaml")

# Environment variables scanned per family, in priority order.
ENV_CREDENTIALS: dict[str, tuple[str, ...]] = {
    "fal": ("FAL_KEY", "FAL_API_KEY"),
    "google": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "huggingface": ("HUGGINGFACE_TOKEN", "HF_TOKEN"),
    "together": ("TOGETHER_API_KEY",),
    "siliconflow": ("SILICONFLOW_API_KEY",),
}

# Numbered spill-over keys (FAL_KEY_2, FAL_KEY_3, ...) are read until the first gap.
_NUMBERED_PREFIX: dict[str, str] = {"fal": "FAL_KEY"}

_FORMATS: dict[str, str] = {".json": "json", ".yaml": "yaml", ".yml": "yaml"}


def detect_format(file_path: Path | str) -> str:
    """Config format ("json" or "yaml") from the file extension.

    Raises:
        ValueError: If the extension is not a known config format

    Example:
        >>> detect_format("atelier.yml")
        'yaml'
    """
    suffix = Path(file_path).suffix.lower()
    try:
        return _FORMATS[suffix]
    except KeyError:
        raise ValueError(f"Unsupported config format: {suffix}") from None


def load_config(path: str | Path) -> dict[str, Any]:
    """Read a config file into a raw dictionary; an empty file reads as ``{}``.

    Raises:
        FileNotFoundError: If config file does not exist
        ValueError: If format is not supported or file content is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    fmt = detect_format(path)
    text = path.read_text(encoding="utf-8")
    try:
        content = json.loads(text) if fmt == "json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Invalid {fmt.upper()} in {path}: {e}") from e
    return content if content is not None else {}


def load_app_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """Load and validate application configuration.

    A missing file at the default path yields all defaults. Credentials and
    storage settings are then completed from environment variables.

    Args:
        path: Path to app config file (.json, .yaml, or .yml). Defaults to atelier.yaml
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ValidationError: If config is invalid
    """
    if path is None:
        path = _DEFAULT_APP_CONFIG_PATH
        raw_config = load_config(path) if path.exists() else {}
    else:
        raw_config = load_config(path)

    config = AppConfig.model_validate(raw_config)
    return apply_env(config, os.environ if environ is None else environ)


def env_credentials(family: str, environ: Mapping[str, str]) -> list[CredentialConfig]:
    """Collect the credentials for one family from the environment."""
    names = list(ENV_CREDENTIALS.get(family, ()))
    prefix = _NUMBERED_PREFIX.get(family)
    if prefix:
        n = 2
        while f"{prefix}_{n}" in environ:
            names.append(f"{prefix}_{n}")
            n += 1

    creds: list[CredentialConfig] = []
    seen: set[str] = set()
    for name in names:
        value = (environ.get(name) or "").strip()
        if not value or value in seen:
            continue
        seen.add(value)
        creds.append(CredentialConfig(id=name, secret=value))
    return creds


def apply_env(config: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    """Return a copy of config with environment credentials appended.

    Credentials already present in the file keep their priority; environment
    keys with the same secret are skipped.
    """
    providers = dict(config.providers)
    for family in ENV_CREDENTIALS:
        section = providers.get(family, ProviderConfig())
        known = {c.secret.get_secret_value() for c in section.credentials}
        extra = [
            c for c in env_credentials(family, environ) if c.secret.get_secret_value() not in known
        ]
        if extra:
            logger.debug("Loaded %d %s credential(s) from environment", len(extra), family)
            section = section.model_copy(update={"credentials": [*section.credentials, *extra]})
        providers[family] = section

    storage_updates: dict[str, Any] = {}
    if config.storage.supabase_url is None and environ.get("SUPABASE_URL"):
        storage_updates["supabase_url"] = environ["SUPABASE_URL"]
    if config.storage.service_role_key is None and environ.get("SUPABASE_SERVICE_ROLE_KEY"):
        storage_updates["service_role_key"] = SecretStr(environ["SUPABASE_SERVICE_ROLE_KEY"])
    storage = config.storage.model_copy(update=storage_updates) if storage_updates else config.storage

    return config.model_copy(update={"providers": providers, "storage": storage})
