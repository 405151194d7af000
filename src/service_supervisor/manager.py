# noqa: D401
"""Platform-independent service lifecycle manager.

States::

    stopped -> starting -> running -> stopping -> stopped
                  |                       |
                  +-------> error <-------+

``error`` is terminal for the failed operation; callers retry by calling
``start_service`` or ``stop_service`` again. Platform subclasses only decide
which :class:`ProcessControl` to use and how the process is named.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional

from .errors import PlatformError, ProcessError, ServiceTimeoutError, SupervisorError
from .health import HealthProbe, HealthWaiter, HttpHealthProbe
from .models import ServiceConfig, ServiceState, ServiceStatus
from .process import ProcessControl

logger = logging.getLogger(__name__)


class BaseServiceManager(ABC):
    """Starts, stops and health-checks one supervised service."""

    platform: str = ""

    def __init__(
        self,
        config: ServiceConfig,
        process_control: Optional[ProcessControl] = None,
        probe: Optional[HealthProbe] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize service manager.

        Args:
            config: Service configuration
            process_control: Process primitives (defaults to the platform's own)
            probe: Health probe (defaults to an HTTP probe on the configured port)
            clock: Monotonic clock in seconds
            sleep: Coroutine used between polls
        """
        self.config = config
        self.process_control = process_control or self._create_process_control()
        self.probe = probe or HttpHealthProbe(
            port=config.port,
            endpoint=config.health_check.endpoint,
            host=config.host,
            timeout=config.health_check.request_timeout,
        )
        self.process_name = config.process_name or self._default_process_name()

        self._clock = clock
        self._sleep = sleep
        self._status = ServiceStatus()

    @abstractmethod
    def _create_process_control(self) -> ProcessControl:
        """Build the process primitives for this platform."""

    @abstractmethod
    def _default_process_name(self) -> str:
        """Name the service process goes by on this platform."""

    async def start_service(self) -> None:
        """Start the service unless it is already healthy.

        Raises:
            ProcessError: If a stray process cannot be stopped or the command cannot be spawned
            ServiceTimeoutError: If the service did not become healthy in time
            HealthCheckError: If the attempt budget ran out first
            PlatformError: For any other failure
        """
        if await self.check_health():
            logger.debug("Service already running")
            self._update_status(state=ServiceState.RUNNING, pid=await self._lookup_pid())
            return

        self._update_status(state=ServiceState.STARTING, last_error=None)
        logger.info(f"Starting service: {self.config.command}")

        try:
            with self._platform_boundary("start"):
                await self._reconcile_existing()
                await self.process_control.start_process(self.config.command, self.config.args)
                await self.wait_for_health()
        except SupervisorError as e:
            self._fail("start", e)
            raise

        self._update_status(state=ServiceState.RUNNING, pid=await self._lookup_pid())
        self._log_status_change("start")

    async def stop_service(self) -> None:
        """Stop the service and confirm it no longer answers health checks.

        Raises:
            ProcessError: If both graceful and forced stop fail
            ServiceTimeoutError: If the service still answers after being stopped
            PlatformError: For any other failure
        """
        if not await self.check_health():
            logger.debug("Service not running, nothing to stop")
            self._update_status(state=ServiceState.STOPPED, pid=None)
            return

        self._update_status(state=ServiceState.STOPPING)
        logger.info(f"Stopping service ({self.process_name})")

        try:
            with self._platform_boundary("stop"):
                forced = await self._stop_with_escalation()
                stopped = await self._confirm_stopped()
                if not stopped and not forced:
                    # Exited but the port is still answering
                    logger.warning(f"{self.process_name} still answering after graceful stop")
                    await self._force_stop()
                    stopped = await self._confirm_stopped()
                if not stopped:
                    budget_ms = int(
                        self.config.stop_confirm_attempts
                        * self.config.stop_confirm_interval
                        * 1000
                    )
                    raise ServiceTimeoutError(
                        f"Service still healthy after stopping {self.process_name}",
                        "stop",
                        budget_ms,
                    )
        except SupervisorError as e:
            self._fail("stop", e)
            raise

        self._update_status(state=ServiceState.STOPPED, pid=None)
        self._log_status_change("stop")

    async def check_health(self) -> bool:
        """Probe the service once. Does not touch stored status."""
        return await self.probe.check()

    async def get_status(self) -> ServiceStatus:
        """Re-verify health and return a copy of the current status."""
        if await self.check_health():
            self._update_status(state=ServiceState.RUNNING)
        elif self._status.state == ServiceState.RUNNING:
            self._update_status(state=ServiceState.STOPPED, pid=None)
        return self._status.model_copy()

    async def wait_for_health(self, probe: Optional[HealthProbe] = None) -> None:
        """Block until the service is healthy.

        Args:
            probe: Probe to poll instead of the manager's own

        Raises:
            ServiceTimeoutError: If the wall-clock timeout elapsed
            HealthCheckError: If the attempt budget ran out first
        """
        waiter = HealthWaiter(self.config.health_check, clock=self._clock, sleep=self._sleep)
        await waiter.wait(probe or self.probe, self.get_status)
        self._update_status(state=ServiceState.RUNNING)

    async def close(self) -> None:
        """Release the probe's HTTP client and stop draining child output."""
        close = getattr(self.probe, "close", None)
        if close is not None:
            await close()
        await self.process_control.close()

    async def __aenter__(self) -> BaseServiceManager:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    async def _reconcile_existing(self) -> None:
        """Stop a stray service process left over from an earlier run."""
        if await self.process_control.is_process_running(self.process_name):
            logger.info(f"Found existing {self.process_name} process, stopping it")
            await self._stop_with_escalation()

    async def _stop_with_escalation(self) -> bool:
        """Stop gracefully, forcing once on failure.

        Returns:
            True if the forced stop was used
        """
        try:
            await self.process_control.stop_process(self.process_name)
            return False
        except Exception as e:
            logger.warning(f"Graceful stop of {self.process_name} failed ({e}), forcing")

        await self._force_stop()
        return True

    async def _force_stop(self) -> None:
        """Kill the process, reporting any failure as a ProcessError."""
        try:
            await self.process_control.force_stop_process(self.process_name)
        except ProcessError:
            raise
        except Exception as e:
            raise ProcessError(
                f"Failed to force stop {self.process_name}: {e}",
                self.process_name,
                "stop",
                e,
            ) from e

    async def _confirm_stopped(self) -> bool:
        """Poll until the health probe fails, i.e. the port is released."""
        attempts = self.config.stop_confirm_attempts
        for attempt in range(1, attempts + 1):
            if not await self.check_health():
                return True
            logger.debug(f"Service still healthy ({attempt}/{attempts})")
            if attempt < attempts:
                await self._sleep(self.config.stop_confirm_interval)
        return False

    async def _lookup_pid(self) -> Optional[int]:
        """PID of the running service process, if it can be found."""
        try:
            info = await self.process_control.find_process(self.process_name)
        except ProcessError as e:
            logger.warning(f"Could not look up PID of {self.process_name}: {e}")
            return None
        return info.pid if info else None

    @contextmanager
    def _platform_boundary(self, operation: str) -> Iterator[None]:
        """Fold unclassified failures into PlatformError."""
        try:
            yield
        except SupervisorError:
            raise
        except Exception as e:
            raise PlatformError(
                f"Failed to {operation} service on {self.platform} platform: {e}",
                self.platform,
                operation,
                e,
            ) from e

    def _update_status(self, **changes: Any) -> None:
        """Merge changes into the status, keeping ``running`` in sync with ``state``."""
        if "state" in changes:
            changes["running"] = changes["state"] == ServiceState.RUNNING
        self._status = self._status.model_copy(update=changes)

    def _fail(self, operation: str, error: SupervisorError) -> None:
        """Record a failed operation."""
        self._update_status(state=ServiceState.ERROR, last_error=str(error))
        self._log_status_change(operation, error)

    def _log_status_change(self, operation: str, error: Optional[BaseException] = None) -> None:
        """Log the outcome of an operation."""
        if error is not None:
            logger.error(f"Service {operation} failed: {error}")
        else:
            logger.info(
                f"Service {operation} completed. Status: {self._status.state.value}"
            )


__all__ = ["BaseServiceManager"]
