"""Configuration models for natpmpc."""

from __future__ import annotations

import ipaddress
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from natpmpc.protocol import NATPMP_MAX_ATTEMPTS


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.WARNING, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Emit JSON log records instead of Rich console output",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class ClientConfig(BaseModel):
    """NAT-PMP client configuration."""

    gateway: str | None = Field(
        default=None,
        description="Gateway IPv4 address (None to use the default gateway)",
    )
    timeout: float = Field(
        default=0.25,
        gt=0.0,
        le=60.0,
        description="Per-receive timeout in seconds",
    )
    max_attempts: int = Field(
        default=NATPMP_MAX_ATTEMPTS,
        ge=1,
        le=64,
        description="Receive attempts before giving up",
    )
    retry_backoff: bool = Field(
        default=False,
        description="Sleep with exponential backoff between failed receives",
    )
    retry_base_delay: float = Field(
        default=0.25,
        ge=0.0,
        le=60.0,
        description="First backoff delay in seconds",
    )
    retry_max_delay: float = Field(
        default=64.0,
        ge=0.0,
        le=3600.0,
        description="Upper bound for a single backoff delay in seconds",
    )
    mapping_lifetime: int = Field(
        default=7200,
        ge=0,
        le=0xFFFFFFFF,
        description="Default port mapping lifetime in seconds",
    )

    @field_validator("gateway")
    @classmethod
    def _validate_gateway(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return str(ipaddress.IPv4Address(v))


class Config(BaseModel):
    """Root configuration."""

    client: ClientConfig = Field(default_factory=ClientConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
