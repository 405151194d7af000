# noqa: D401
"""Factory selecting the service manager for an operating system."""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Optional, Type

from .errors import PlatformError
from .manager import BaseServiceManager
from .models import ServiceConfig
from .platforms import UnixServiceManager, WindowsServiceManager

logger = logging.getLogger(__name__)

# sys.platform value -> manager class
PLATFORM_MANAGERS: Dict[str, Type[BaseServiceManager]] = {
    "win32": WindowsServiceManager,
    "linux": UnixServiceManager,
    "darwin": UnixServiceManager,
}


class ServiceManagerFactory:
    """Creates platform-specific service managers."""

    @staticmethod
    def create(config: ServiceConfig, **kwargs: Any) -> BaseServiceManager:
        """Create a service manager for the running operating system.

        Args:
            config: Service configuration
            **kwargs: Passed through to the manager (probe, process_control, ...)

        Returns:
            Service manager for ``sys.platform``

        Raises:
            PlatformError: If the platform is not supported
        """
        return ServiceManagerFactory.create_for_platform(sys.platform, config, **kwargs)

    @staticmethod
    def create_for_platform(
        platform: str,
        config: ServiceConfig,
        **kwargs: Any,
    ) -> BaseServiceManager:
        """Create a service manager for a specific platform (useful for testing).

        Raises:
            PlatformError: If the platform is not supported
        """
        manager_cls = PLATFORM_MANAGERS.get(platform)
        if manager_cls is None:
            raise PlatformError(f"Unsupported platform: {platform}", platform, "create")

        logger.debug(f"Creating {manager_cls.platform} service manager for {platform}")
        return manager_cls(config, **kwargs)


def create_service_manager(
    config: ServiceConfig,
    platform: Optional[str] = None,
    **kwargs: Any,
) -> BaseServiceManager:
    """Create a service manager for the current (or given) platform.

    Args:
        config: Service configuration
        platform: ``sys.platform``-style override

    Returns:
        Service manager instance
    """
    if platform is None:
        return ServiceManagerFactory.create(config, **kwargs)
    return ServiceManagerFactory.create_for_platform(platform, config, **kwargs)


__all__ = [
    "PLATFORM_MANAGERS",
    "ServiceManagerFactory",
    "create_service_manager",
]
