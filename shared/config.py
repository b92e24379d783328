"""
Shared configuration management for the Pet Hospital Access Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PETHOSPITAL_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    metrics_port: Optional[int] = Field(default=None)

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    dynamodb_table: str = Field(default="pet-hospital-hospitals")
    aws_region: str = Field(default="us-west-2")

    # Cache layer
    cache_default_ttl: int = Field(default=3600, gt=0)
    cache_operation_timeout: Optional[float] = Field(default=2.0)
    cache_fallback_max_entries: int = Field(default=10000, gt=0)
    cache_reconnect_max_delay: float = Field(default=3.0, gt=0)
    cache_retry_on_refused: bool = Field(default=False)


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
