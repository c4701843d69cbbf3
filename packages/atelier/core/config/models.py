"""Configuration models for Atelier."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class ConfigBase(BaseModel):
    """Base class for all Atelier configuration sections."""

    model_config = ConfigDict(extra="ignore")  # Forward compatibility


class CredentialConfig(ConfigBase):
    """One provider credential.

    The secret is a ``SecretStr`` so it never shows up in reprs or logs.
    """

    id: str = Field(min_length=1, description="Stable identifier used in logs and handles")
    secret: SecretStr


class EndpointConfig(ConfigBase):
    """A base URL that serves a provider family."""

    label: str
    base_url: str

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class ProviderConfig(ConfigBase):
    """Per-family provider configuration.

    Empty endpoint lists mean "use the built-in endpoints for this family".
    Credentials listed here are tried before any picked up from the environment.
    """

    enabled: bool = True
    credentials: list[CredentialConfig] = Field(default_factory=list)
    sync_endpoints: list[EndpointConfig] = Field(default_factory=list)
    queue_endpoints: list[EndpointConfig] = Field(default_factory=list)
    operation_endpoints: list[EndpointConfig] = Field(default_factory=list)
    query_param_auth: bool = Field(
        default=False, description="Send the key as ?key= instead of a header (Google only)"
    )


class PollingConfig(ConfigBase):
    """Fixed-interval polling budget. Wall time is interval_s x max_attempts."""

    interval_s: float = Field(default=5.0, ge=0.0)
    max_attempts: int = Field(default=180, gt=0)


def _default_polling() -> dict[str, PollingConfig]:
    return {
        "fal": PollingConfig(interval_s=5.0, max_attempts=180),
        "google": PollingConfig(interval_s=10.0, max_attempts=60),
        "siliconflow": PollingConfig(interval_s=5.0, max_attempts=180),
    }


class StorageConfig(ConfigBase):
    """Durable artifact storage configuration."""

    backend: Literal["supabase", "local"] = "local"
    bucket: str = "generations"
    supabase_url: str | None = None
    service_role_key: SecretStr | None = None
    local_root: str = "artifacts"
    public_base_url: str | None = Field(
        default=None, description="Base URL under which local_root is served"
    )
    require_durable: bool = Field(
        default=False, description="Raise instead of returning an inline artifact"
    )


class HttpConfig(ConfigBase):
    """Outbound HTTP timeouts."""

    timeout_s: float = Field(default=120.0, gt=0)
    connect_timeout_s: float = Field(default=10.0, gt=0)


class LoggingConfig(ConfigBase):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    structured: bool = False
    filename: str | None = None


class AppConfig(ConfigBase):
    """Application-level configuration, read once at process start."""

    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    polling: dict[str, PollingConfig] = Field(default_factory=_default_polling)
    storage: StorageConfig = StorageConfig()
    http: HttpConfig = HttpConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("providers", "polling")
    @classmethod
    def normalize_family_keys(cls, v: dict) -> dict:
        return {k.strip().lower(): cfg for k, cfg in v.items()}

    def provider(self, family: str) -> ProviderConfig:
        """Return the section for a family, or defaults if it is not configured."""
        return self.providers.get(family, ProviderConfig())

    def polling_for(self, family: str) -> PollingConfig:
        """Return the polling budget for a family."""
        defaults = _default_polling()
        return self.polling.get(family) or defaults.get(family) or PollingConfig()
