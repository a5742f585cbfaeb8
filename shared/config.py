"""
Shared configuration management for the Workspace Gating Layer.
"""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STARTUP_READINESS_WEIGHTS: Dict[str, int] = {
    "team": 20,
    "product": 20,
    "market": 15,
    "traction": 15,
    "financials": 15,
    "legal": 10,
    "pitch_materials": 5,
}

# Environments where configuration defects raise instead of degrading to "blocked"
STRICT_ENVIRONMENTS = ("local", "test")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATING_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Backing stores
    store_backend: str = Field(default="memory", description="memory | postgres")
    ledger_backend: str = Field(default="memory", description="memory | redis")
    postgres_dsn: str = Field(default="postgres://localhost:5432/workspace")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Gating rules
    strict_gates: Optional[bool] = Field(default=None)
    engagement_expiry_days: int = Field(default=14, ge=1)
    consume_request_quota_on_create: bool = Field(default=False)
    system_token: Optional[str] = Field(default=None, description="Shared secret for system-only endpoints")
    startup_readiness_weights: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_STARTUP_READINESS_WEIGHTS)
    )

    @property
    def gates_strict(self) -> bool:
        """Whether gates raise on catalog defects instead of blocking."""
        if self.strict_gates is not None:
            return self.strict_gates
        return self.env in STRICT_ENVIRONMENTS


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
