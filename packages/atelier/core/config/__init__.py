"""Configuration management for Atelier."""

from atelier.core.config.loader import (
    ENV_CREDENTIALS,
    apply_env,
    detect_format,
    env_credentials,
    load_app_config,
    load_config,
)
from atelier.core.config.models import (
    AppConfig,
    CredentialConfig,
    EndpointConfig,
    HttpConfig,
    LoggingConfig,
    PollingConfig,
    ProviderConfig,
    StorageConfig,
)

__all__ = [
    # Loaders
    "load_config",
    "load_app_config",
    "detect_format",
    "apply_env",
    "env_credentials",
    "ENV_CREDENTIALS",
    # Models
    "AppConfig",
    "CredentialConfig",
    "EndpointConfig",
    "HttpConfig",
    "LoggingConfig",
    "PollingConfig",
    "ProviderConfig",
    "StorageConfig",
]
