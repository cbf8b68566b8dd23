"""
Shared configuration management for the storefront services.
"""

import os
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Persistent store
    database_url: Optional[str] = Field(default=None)
    pool_min_size: int = Field(default=2)
    pool_max_size: int = Field(default=10)
    command_timeout: float = Field(default=30.0)

    # Connection supervision
    retry_base_delay: float = Field(default=2.0)
    retry_max_delay: float = Field(default=60.0)
    retry_jitter_max: float = Field(default=1.0)

    # Security
    jwt_secret: str = Field(..., min_length=1)
    jwt_algorithm: str = Field(default="HS256")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "store"
    port: int = 5001
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    ``STORE_PORT`` in the environment wins over the service's default port.
    """
    if "STORE_PORT" not in os.environ:
        overrides.setdefault("port", port)
    return ServiceConfig(service_name=service_name, **overrides)
