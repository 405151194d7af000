# noqa: D401
"""Data models for the service supervisor."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_HEALTH_ENDPOINT = "/api/tags"


class ServiceState(str, Enum):
    """Service lifecycle states."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class HealthCheckConfig(BaseModel):
    """Health-wait budget. Durations are in seconds."""

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(gt=0)
    interval: float = Field(gt=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    endpoint: str = DEFAULT_HEALTH_ENDPOINT
    request_timeout: float = Field(default=2.0, gt=0)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Health endpoints are absolute paths."""
        if not v.startswith("/"):
            return f"/{v}"
        return v

    @model_validator(mode="after")
    def validate_budget(self) -> "HealthCheckConfig":
        """The timeout must cover at least one interval."""
        if self.timeout < self.interval:
            raise ValueError(
                f"timeout ({self.timeout}s) must be >= interval ({self.interval}s)"
            )
        return self

    @property
    def timeout_ms(self) -> int:
        """Timeout in milliseconds, as reported in errors."""
        return int(self.timeout * 1000)


class ServiceConfig(BaseModel):
    """Immutable configuration for a supervised service."""

    model_config = ConfigDict(frozen=True)

    # Launch
    command: str = Field(min_length=1)
    args: List[str] = Field(default_factory=list)
    process_name: Optional[str] = None
    log_file: Optional[Path] = None

    # Network
    host: str = "127.0.0.1"
    port: int = Field(ge=1, le=65535)

    # Health
    health_check: HealthCheckConfig

    # Shutdown
    graceful_stop_timeout: float = Field(default=5.0, gt=0)
    stop_confirm_attempts: int = Field(default=5, ge=1)
    stop_confirm_interval: float = Field(default=1.0, ge=0)

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Reject commands that are only whitespace."""
        if not v.strip():
            raise ValueError("command must not be blank")
        return v.strip()

    @field_validator("log_file", mode="before")
    @classmethod
    def validate_log_file(cls, v: Any) -> Optional[Path]:
        """Convert string paths to Path objects."""
        if isinstance(v, str):
            return Path(v) if v else None
        return v

    @property
    def executable(self) -> str:
        """First token of the launch command."""
        # Windows paths carry backslashes that POSIX splitting would eat
        posix = "\\" not in self.command
        return shlex.split(self.command, posix=posix)[0].strip('"')

    @property
    def executable_name(self) -> str:
        """Basename of the launch executable (e.g. ``ollama``)."""
        return Path(self.executable.replace("\\", "/")).name


class ServiceStatus(BaseModel):
    """Current status of a supervised service.

    Owned by exactly one manager; callers only ever see copies.
    """

    running: bool = False
    state: ServiceState = ServiceState.STOPPED
    pid: Optional[int] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class ProcessInfo:
    """A process found by lookup."""

    pid: int
    name: str


__all__ = [
    "DEFAULT_HEALTH_ENDPOINT",
    "ServiceState",
    "HealthCheckConfig",
    "ServiceConfig",
    "ServiceStatus",
    "ProcessInfo",
]
