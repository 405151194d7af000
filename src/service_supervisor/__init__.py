# noqa: D401
"""Service supervisor - keeps a local inference server reachable."""

__version__ = "0.1.0"

from .config import ConfigManager, load_config, save_config
from .errors import (
    ConfigError,
    ErrorCode,
    HealthCheckError,
    PlatformError,
    ProcessError,
    ServiceError,
    ServiceTimeoutError,
    SupervisorError,
)
from .factory import ServiceManagerFactory, create_service_manager
from .health import HealthProbe, HealthWaiter, HttpHealthProbe, wait_for_health
from .manager import BaseServiceManager
from .models import (
    HealthCheckConfig,
    ProcessInfo,
    ServiceConfig,
    ServiceState,
    ServiceStatus,
)
from .platforms import UnixServiceManager, WindowsServiceManager
from .process import ProcessControl, UnixProcessControl, WindowsProcessControl

__all__ = [
    "__version__",
    # Config
    "ConfigManager",
    "load_config",
    "save_config",
    # Errors
    "ErrorCode",
    "SupervisorError",
    "ServiceError",
    "ProcessError",
    "ServiceTimeoutError",
    "HealthCheckError",
    "PlatformError",
    "ConfigError",
    # Factory
    "ServiceManagerFactory",
    "create_service_manager",
    # Health
    "HealthProbe",
    "HttpHealthProbe",
    "HealthWaiter",
    "wait_for_health",
    # Manager
    "BaseServiceManager",
    "UnixServiceManager",
    "WindowsServiceManager",
    # Models
    "HealthCheckConfig",
    "ProcessInfo",
    "ServiceConfig",
    "ServiceState",
    "ServiceStatus",
    # Process
    "ProcessControl",
    "UnixProcessControl",
    "WindowsProcessControl",
]
