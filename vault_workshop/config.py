"""Application configuration module."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class VaultConfig(BaseModel):
    """Connection settings for the shared Vault cluster."""

    address: Optional[str] = Field(None, description="Base URL of the Vault cluster")
    admin_token: Optional[SecretStr] = Field(
        None, description="Admin-scoped token used for provisioning, issuance and nuke"
    )
    parent_namespace: str = Field("admin", description="Namespace holding every attendee namespace")
    namespace_prefix: str = Field("team_", description="Prefix of attendee namespace names")
    timeout: int = Field(30, ge=1, le=300, description="Timeout in seconds for every Vault request")
    verify: bool = Field(True, description="Verify the TLS certificate of the Vault cluster")

    @field_validator("address")
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().rstrip("/") or None

    @field_validator("parent_namespace")
    def _normalize_parent(cls, value: str) -> str:
        return value.strip("/")

    def namespace_path(self, suffix: str) -> str:
        """Fully qualified namespace for an attendee suffix, e.g. ``admin/team_raymon``."""

        return f"{self.parent_namespace}/{self.namespace_prefix}{suffix}"

    def require(self) -> tuple:
        """Return ``(address, admin_token)`` or raise if either is missing."""

        missing = []
        if not self.address:
            missing.append("WORKSHOP_VAULT__ADDRESS")
        if self.admin_token is None or not self.admin_token.get_secret_value():
            missing.append("WORKSHOP_VAULT__ADMIN_TOKEN")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                remediation="Set "
                + " and ".join(missing)
                + " in the environment or in .env, then run: vault-workshop preflight",
            )
        return self.address, self.admin_token.get_secret_value()


class PulumiConfig(BaseModel):
    """Pulumi Automation API configuration."""

    project_name: str = Field("vault-workshop", description="Pulumi project name")
    stack_name: str = Field("workshop", description="Stack holding every attendee namespace")
    organization: Optional[str] = Field(
        None,
        description=(
            "Optional Pulumi organization name. When provided, the stack is scoped as"
            " '<org>/<project>/<stack>'."
        ),
    )
    work_dir: Optional[str] = Field(
        None,
        description=(
            "Optional working directory containing the Pulumi program. If omitted the"
            " embedded inline program is used."
        ),
    )
    backend_url: Optional[str] = Field(
        None, description="State backend, e.g. file://~/.pulumi-workshop; defaults to the logged-in backend"
    )
    config_passphrase: Optional[SecretStr] = Field(
        None, description="Passphrase for the passphrase secrets provider"
    )
    refresh_before_update: bool = Field(
        True, description="Refresh stack state from the provider before updating"
    )
    plugin_version: str = Field("v6.4.0", description="Version of the Pulumi Vault resource plugin")

    @field_validator("stack_name")
    def _normalize_stack_name(cls, value: str) -> str:
        return value.replace(" ", "-").lower()


class PathsConfig(BaseModel):
    """Where inputs are read from and artifacts are written to."""

    input_dir: Path = Field(Path("input"), description="Directory holding the ticket export")
    output_dir: Path = Field(Path("output"), description="Directory receiving every generated artifact")

    @property
    def tickets_json(self) -> Path:
        return self.output_dir / "tickets.json"

    @property
    def tickets_extended_json(self) -> Path:
        return self.output_dir / "tickets_extended.json"

    @property
    def desired_state(self) -> Path:
        return self.output_dir / "attendees.json"

    @property
    def credentials_csv(self) -> Path:
        return self.output_dir / "credentials.csv"

    @property
    def credentials_json(self) -> Path:
        return self.output_dir / "credentials.json"

    @property
    def tokens_csv(self) -> Path:
        return self.output_dir / "wrapped_story_tokens.csv"

    @property
    def tokens_json(self) -> Path:
        return self.output_dir / "wrapped_story_tokens.json"


class RabbitMQConfig(BaseModel):
    """Configuration options for the audit event broker."""

    url: str = Field(..., description="AMQP URL for the RabbitMQ broker")
    exchange: str = Field("workshop.events", description="Topic exchange receiving audit events")
    audit_routing_key: str = Field("audit.workshop.event", description="Routing key of audit events")


class LoggingConfig(BaseModel):
    """Simple logging configuration."""

    level: str = Field("INFO", description="Application log level")


class AppConfig(BaseSettings):
    """Top-level application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="WORKSHOP_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    vault: VaultConfig = Field(default_factory=VaultConfig)
    pulumi: PulumiConfig = Field(default_factory=PulumiConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rabbitmq: Optional[RabbitMQConfig] = None
    nuke_allowed: bool = Field(
        False,
        description="Guard flag for destructive operations. Set it in the instructor environment only.",
    )
    wrap_ttl: str = Field("60m", description="Time-to-live of wrapped story tokens")
    disable_pulumi: bool = Field(
        False,
        description="When true the Pulumi automation calls are skipped. Useful for local development.",
    )
    api_prefix: str = Field("/api/v1", description="Base prefix for FastAPI routes")
    service_name: str = Field("vault-workshop", description="Service identifier")

    @field_validator("nuke_allowed", mode="before")
    def _parse_guard_flag(cls, value: object) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)


@lru_cache
def get_settings() -> AppConfig:
    """Return a cached instance of the application settings."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "VaultConfig",
    "PulumiConfig",
    "PathsConfig",
    "RabbitMQConfig",
    "LoggingConfig",
    "get_settings",
]
