# noqa: D401
"""Error taxonomy for the service supervisor.

Every error carries an :class:`ErrorCode` discriminant plus the structured
fields an operator needs to diagnose the failure (operation, attempts,
timeout, underlying cause).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .models import ServiceStatus


class ErrorCode(str, Enum):
    """Discriminant codes for supervisor failures."""

    SERVICE_ERROR = "SERVICE_ERROR"
    PROCESS_ERROR = "PROCESS_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    HEALTH_CHECK_ERROR = "HEALTH_CHECK_ERROR"
    PLATFORM_ERROR = "PLATFORM_ERROR"


class SupervisorError(Exception):
    """Base exception for all supervisor errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging and CLI output."""
        details = {}
        for key, value in self.details.items():
            if isinstance(value, BaseException):
                details[key] = f"{type(value).__name__}: {value}"
            elif hasattr(value, "to_dict"):
                details[key] = value.to_dict()
            else:
                details[key] = value
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "details": details,
        }


class ServiceError(SupervisorError):
    """Generic service operation failure not otherwise classified."""

    def __init__(
        self,
        message: str,
        status: Optional["ServiceStatus"] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.SERVICE_ERROR,
            {"status": status, "cause": cause},
        )
        self.status = status
        self.cause = cause


class ProcessError(SupervisorError):
    """Raised when the OS refuses a spawn, kill or lookup."""

    def __init__(
        self,
        message: str,
        process_name: str,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        if operation not in ("start", "stop", "find"):
            raise ValueError(f"Invalid process operation: {operation}")
        super().__init__(
            message,
            ErrorCode.PROCESS_ERROR,
            {"process_name": process_name, "operation": operation, "cause": cause},
        )
        self.process_name = process_name
        self.operation = operation
        self.cause = cause


class ServiceTimeoutError(SupervisorError):
    """Raised when a wall-clock budget elapses."""

    def __init__(self, message: str, operation: str, timeout_ms: int) -> None:
        super().__init__(
            message,
            ErrorCode.TIMEOUT_ERROR,
            {"operation": operation, "timeout_ms": timeout_ms},
        )
        self.operation = operation
        self.timeout_ms = timeout_ms


class HealthCheckError(SupervisorError):
    """Raised when the attempt budget runs out before the timeout fires."""

    def __init__(
        self,
        message: str,
        status: Optional["ServiceStatus"],
        attempts: int,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.HEALTH_CHECK_ERROR,
            {"status": status, "attempts": attempts},
        )
        self.status = status
        self.attempts = attempts


class PlatformError(SupervisorError):
    """Wraps an unclassified failure inside a platform strategy."""

    def __init__(
        self,
        message: str,
        platform: str,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.PLATFORM_ERROR,
            {"platform": platform, "operation": operation, "cause": cause},
        )
        self.platform = platform
        self.operation = operation
        self.cause = cause


class ConfigError(SupervisorError):
    """Raised when supervisor configuration cannot be loaded or is invalid."""

    def __init__(self, message: str, key: Optional[str] = None, value: Any = None) -> None:
        super().__init__(message, ErrorCode.CONFIG_ERROR, {"key": key, "value": value})
        self.key = key
        self.value = value


__all__ = [
    "ErrorCode",
    "SupervisorError",
    "ServiceError",
    "ProcessError",
    "ServiceTimeoutError",
    "HealthCheckError",
    "PlatformError",
    "ConfigError",
]
