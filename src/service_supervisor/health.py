# noqa: D401
"""Health probing and health-wait polling for the supervised service."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional, Protocol

import httpx

from .errors import HealthCheckError, ServiceTimeoutError
from .models import DEFAULT_HEALTH_ENDPOINT, HealthCheckConfig, ServiceStatus

logger = logging.getLogger(__name__)

StatusSupplier = Callable[[], Awaitable[ServiceStatus]]


class HealthProbe(Protocol):
    """A single liveness check. Implementations never raise."""

    async def check(self) -> bool:
        ...


class HttpHealthProbe:
    """Liveness probe issuing one bounded GET against the service.

    Success means the transport worked and the response is 2xx. Connection
    errors, timeouts and non-success responses all report ``False``.
    """

    def __init__(
        self,
        port: int,
        endpoint: str = DEFAULT_HEALTH_ENDPOINT,
        host: str = "127.0.0.1",
        timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize health probe.

        Args:
            port: Port the service listens on
            endpoint: Path of the status endpoint
            host: Host the service listens on
            timeout: HTTP request timeout in seconds
            client: Optional shared HTTP client (not closed by this probe)
        """
        self.port = port
        self.endpoint = endpoint
        self.host = host
        self.timeout = timeout

        self._client = client
        self._owns_client = client is None

    @property
    def url(self) -> str:
        """Full health check URL."""
        return f"http://{self.host}:{self.port}{self.endpoint}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        return self._client

    async def check(self) -> bool:
        """Perform single health check.

        Returns:
            True if the service answered with a 2xx status
        """
        try:
            client = await self._get_client()
            response = await client.get(self.url)
        except httpx.ConnectError:
            logger.debug(f"Health check: connection refused at {self.url}")
            return False
        except httpx.TimeoutException:
            logger.debug(f"Health check: timeout after {self.timeout}s at {self.url}")
            return False
        except Exception as e:
            logger.debug(f"Health check failed at {self.url}: {e}")
            return False

        if not response.is_success:
            logger.debug(f"Health check: HTTP {response.status_code} from {self.url}")
            return False
        return True

    async def close(self) -> None:
        """Close HTTP client if this probe created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpHealthProbe:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()


class HealthWaiter:
    """Polls a probe on a fixed interval until it succeeds or the budget runs out.

    The attempt budget is primary. The wall-clock timeout is a safety net for
    slow probes, so the two failures are reported as different errors:
    :class:`ServiceTimeoutError` when the timeout has elapsed, and
    :class:`HealthCheckError` when the attempts ran out first.
    """

    def __init__(
        self,
        config: HealthCheckConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize health waiter.

        Args:
            config: Timeout, interval and optional attempt budget
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait between attempts
        """
        self.config = config
        self._clock = clock
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        """Attempt budget, derived from timeout / interval when not configured."""
        if self.config.max_attempts:
            return self.config.max_attempts
        # Tolerate float error, e.g. 0.3 / 0.1 == 2.9999999999999996
        return max(1, math.floor(self.config.timeout / self.config.interval + 1e-9))

    async def wait(self, probe: HealthProbe, current_status: StatusSupplier) -> None:
        """Block until the probe succeeds.

        Args:
            probe: Health probe to poll
            current_status: Supplier of a status snapshot for error reports

        Raises:
            ServiceTimeoutError: If the wall-clock timeout elapsed
            HealthCheckError: If the attempt budget ran out first
        """
        max_attempts = self.max_attempts
        start = self._clock()
        attempts = 0

        while attempts < max_attempts:
            if await probe.check():
                logger.debug(
                    f"Health check passed after {attempts} failed attempts "
                    f"({self._clock() - start:.1f}s)"
                )
                return

            if self._clock() - start >= self.config.timeout:
                await self._raise_timeout(current_status, start)

            attempts += 1
            logger.debug(
                f"Health check attempt {attempts}/{max_attempts} failed, "
                f"waiting {self.config.interval}s..."
            )
            await self._sleep(self.config.interval)

        # The final sleep may have carried us past the deadline
        if self._clock() - start >= self.config.timeout:
            await self._raise_timeout(current_status, start)

        status = await current_status()
        logger.warning(
            f"Health check failed after {attempts} attempts (state: {status.state.value})"
        )
        raise HealthCheckError(
            f"Health check failed after {attempts} attempts",
            status,
            attempts,
        )

    async def _raise_timeout(self, current_status: StatusSupplier, start: float) -> None:
        """Raise the wall-clock timeout error."""
        status = await current_status()
        elapsed = self._clock() - start
        logger.warning(
            f"Health check timed out after {elapsed:.1f}s (state: {status.state.value})"
        )
        raise ServiceTimeoutError(
            f"Health check timed out after {self.config.timeout_ms}ms",
            "health_check",
            self.config.timeout_ms,
        )


async def wait_for_health(
    probe: HealthProbe,
    config: HealthCheckConfig,
    current_status: StatusSupplier,
) -> None:
    """Wait for a service to become healthy.

    Args:
        probe: Health probe to poll
        config: Health-wait budget
        current_status: Supplier of a status snapshot for error reports

    Raises:
        ServiceTimeoutError: If the wall-clock timeout elapsed
        HealthCheckError: If the attempt budget ran out first
    """
    await HealthWaiter(config).wait(probe, current_status)


__all__ = [
    "HealthProbe",
    "HttpHealthProbe",
    "HealthWaiter",
    "StatusSupplier",
    "wait_for_health",
]
