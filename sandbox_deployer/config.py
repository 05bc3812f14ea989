"""
Sandbox Deployer Configuration

Centralized configuration using Pydantic Settings for type-safe environment
variable loading with validation.

All settings can be overridden via environment variables prefixed with
DEPLOYER_. For example, DEPLOYER_SANDBOX_API_TOKEN sets sandbox_api_token.

SECURITY NOTE: The provisioning token and sandbox mnemonics are secrets.
They are masked in logs and should come from CI secrets, never from
committed .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sandbox_deployer.exceptions import ConfigurationError
from sandbox_deployer.models import ChainRequest

_CHAIN_REQUESTS = TypeAdapter(list[ChainRequest])


class Settings(BaseSettings):
    """Deployer settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # RUN INPUTS
    # ═══════════════════════════════════════════════════════════════
    chains: str = Field(
        default="[]", description='JSON array of {"chainId", "blockNumber"?} objects'
    )
    deploy_command: str = Field(default="", description="Shell command performing the deployment")
    working_directory: str = Field(default=".", description="Directory the command runs in")

    # ═══════════════════════════════════════════════════════════════
    # SANDBOX PROVISIONING
    # ═══════════════════════════════════════════════════════════════
    sandbox_api_url: str = Field(
        default="https://api.sandbox.local", description="Sandbox provisioning API base URL"
    )
    sandbox_api_token: str = Field(default="", description="Bearer token for the provisioning API")

    # Liveness polling
    liveness_max_retries: int = Field(
        default=10, ge=1, le=1000, description="Probes before a sandbox is declared not live"
    )
    liveness_delay_seconds: float = Field(
        default=5.0, ge=0.0, le=600.0, description="Fixed delay between liveness probes"
    )

    # HTTP
    http_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Timeout for each provisioning, RPC and notify call"
    )

    # ═══════════════════════════════════════════════════════════════
    # NOTIFICATIONS
    # ═══════════════════════════════════════════════════════════════
    notification_url: str | None = Field(
        default=None, description="Collector endpoint for run notifications"
    )
    notification_token: str | None = Field(
        default=None, description="Optional bearer token for the notification collector"
    )

    # ═══════════════════════════════════════════════════════════════
    # LOGGING
    # ═══════════════════════════════════════════════════════════════
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("sandbox_api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://: {v}")
        return v.rstrip("/")

    @field_validator("notification_url", mode="before")
    @classmethod
    def validate_notification_url(cls, v: str | None) -> str | None:
        # An empty CI input disables notifications.
        if v is None or not str(v).strip():
            return None
        if not str(v).startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://: {v}")
        return str(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    def chain_requests(self) -> list[ChainRequest]:
        """Parse the configured chain list."""
        return parse_chain_requests(self.chains)


def parse_chain_requests(raw: str) -> list[ChainRequest]:
    """
    Parse and validate the chain-list JSON supplied by CI.

    Args:
        raw: JSON array such as '[{"chainId": 1}, {"chainId": 137, "blockNumber": 5000000}]'

    Returns:
        Chain requests in input order

    Raises:
        ConfigurationError: If the JSON is malformed, not an array, or an entry
            is missing chainId
    """
    if not raw or not raw.strip():
        raise ConfigurationError("No chains configured")
    try:
        requests = _CHAIN_REQUESTS.validate_json(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid chains input: {e}") from e
    if not requests:
        raise ConfigurationError("Chains input is an empty list")
    return requests


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Raises:
        ConfigurationError: If environment values fail validation
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid deployer settings: {e}") from e
