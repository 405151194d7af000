# noqa: D401
"""Unit tests for the service lifecycle manager."""

from __future__ import annotations

import pytest

from service_supervisor.errors import (
    HealthCheckError,
    PlatformError,
    ProcessError,
    ServiceTimeoutError,
)
from service_supervisor.models import ServiceState
from service_supervisor.platforms import WindowsServiceManager
from tests.fakes import FakeClock, FakeProcessControl, SequenceProbe, make_config


class TestInitialState:
    """Tests for a freshly constructed manager."""

    @pytest.mark.asyncio
    async def test_starts_stopped(self, make_manager) -> None:
        """Should report stopped before any operation."""
        manager = make_manager(SequenceProbe([False]))

        status = await manager.get_status()

        assert status.running is False
        assert status.state == ServiceState.STOPPED
        assert status.pid is None
        assert status.last_error is None

    def test_process_name_from_command(self, make_manager) -> None:
        """Should name the process after the command's executable."""
        manager = make_manager(SequenceProbe([False]))

        assert manager.process_name == "ollama"

    def test_process_name_override(self, make_manager) -> None:
        """Should prefer an explicitly configured process name."""
        manager = make_manager(
            SequenceProbe([False]), make_config(process_name="ollama-runner")
        )

        assert manager.process_name == "ollama-runner"

    def test_windows_image_name(self, process_control: FakeProcessControl) -> None:
        """Should address the Windows process by its .exe image name."""
        manager = WindowsServiceManager(
            make_config(), process_control=process_control, probe=SequenceProbe([False])
        )

        assert manager.process_name == "ollama.exe"
        assert manager.platform == "windows"


class TestStartService:
    """Tests for start_service."""

    @pytest.mark.asyncio
    async def test_already_healthy_is_noop(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should not touch processes when the service already answers."""
        manager = make_manager(SequenceProbe([True]))

        await manager.start_service()
        await manager.start_service()

        assert process_control.operations == []
        status = await manager.get_status()
        assert status.state == ServiceState.RUNNING
        assert status.running is True

    @pytest.mark.asyncio
    async def test_already_healthy_records_pid(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should report the PID of a service started outside the supervisor."""
        process_control.running = True
        manager = make_manager(SequenceProbe([True]))

        await manager.start_service()

        status = await manager.get_status()
        assert status.pid == 4242
        assert process_control.operations == []

    @pytest.mark.asyncio
    async def test_starts_and_waits_for_health(
        self, make_manager, clock: FakeClock, process_control: FakeProcessControl
    ) -> None:
        """Should become running after two poll intervals (~1s)."""
        # Initial check, then the health wait sees [False, False, True]
        manager = make_manager(SequenceProbe([False, False, False, True]))

        await manager.start_service()

        assert process_control.operations == ["start"]
        assert clock.sleeps == [0.5, 0.5]
        assert clock.now == pytest.approx(1.0)

        status = await manager.get_status()
        assert status.running is True
        assert status.state == ServiceState.RUNNING
        assert status.pid == process_control.pid

    @pytest.mark.asyncio
    async def test_timeout_moves_to_error(
        self, make_manager, clock: FakeClock, process_control: FakeProcessControl
    ) -> None:
        """Should raise a timeout once 5s elapse and keep the error state."""
        manager = make_manager(SequenceProbe([False]))

        with pytest.raises(ServiceTimeoutError) as exc_info:
            await manager.start_service()

        assert exc_info.value.timeout_ms == 5000
        assert clock.now == pytest.approx(5.0)

        status = await manager.get_status()
        assert status.state == ServiceState.ERROR
        assert status.running is False
        assert "timed out" in status.last_error

    @pytest.mark.asyncio
    async def test_attempt_exhaustion_moves_to_error(self, make_manager) -> None:
        """Should surface HealthCheckError when attempts run out first."""
        manager = make_manager(
            SequenceProbe([False]), make_config(timeout=5, interval=1, max_attempts=3)
        )

        with pytest.raises(HealthCheckError) as exc_info:
            await manager.start_service()

        assert exc_info.value.attempts == 3
        assert (await manager.get_status()).state == ServiceState.ERROR

    @pytest.mark.asyncio
    async def test_stops_stray_process_before_spawning(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should stop a leftover process that is not answering health checks."""
        process_control.running = True
        manager = make_manager(SequenceProbe([False, True]))

        await manager.start_service()

        assert process_control.operations == ["stop", "start"]

    @pytest.mark.asyncio
    async def test_stray_process_escalates_to_force(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should force-stop a leftover process that ignores the graceful stop."""
        process_control.running = True
        process_control.stop_error = ProcessError("still alive", "ollama", "stop")
        manager = make_manager(SequenceProbe([False, True]))

        await manager.start_service()

        assert process_control.operations == ["stop", "force_stop", "start"]

    @pytest.mark.asyncio
    async def test_spawn_failure_is_process_error(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should re-raise ProcessError unchanged and record it."""
        error = ProcessError("Binary not found: ollama", "ollama", "start")
        process_control.start_error = error
        manager = make_manager(SequenceProbe([False]))

        with pytest.raises(ProcessError) as exc_info:
            await manager.start_service()

        assert exc_info.value is error
        status = await manager.get_status()
        assert status.state == ServiceState.ERROR
        assert status.last_error == "Binary not found: ollama"

    @pytest.mark.asyncio
    async def test_unclassified_failure_becomes_platform_error(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should wrap unexpected exceptions in PlatformError, keeping the cause."""
        cause = RuntimeError("boom")
        process_control.start_error = cause
        manager = make_manager(SequenceProbe([False]))

        with pytest.raises(PlatformError) as exc_info:
            await manager.start_service()

        assert exc_info.value.platform == "unix"
        assert exc_info.value.operation == "start"
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert (await manager.get_status()).state == ServiceState.ERROR

    @pytest.mark.asyncio
    async def test_retry_after_error(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should allow a new start attempt after a failed one."""
        process_control.start_error = RuntimeError("boom")
        manager = make_manager(SequenceProbe([False, False, True]))

        with pytest.raises(PlatformError):
            await manager.start_service()

        process_control.start_error = None
        await manager.start_service()

        status = await manager.get_status()
        assert status.state == ServiceState.RUNNING
        assert status.last_error is None


class TestStopService:
    """Tests for stop_service."""

    @pytest.mark.asyncio
    async def test_already_stopped_is_noop(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should succeed without touching processes when nothing answers."""
        manager = make_manager(SequenceProbe([False]))

        await manager.stop_service()
        await manager.stop_service()

        assert process_control.calls == []
        assert (await manager.get_status()).state == ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_graceful_stop(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should stop gracefully and confirm via the probe."""
        process_control.running = True
        manager = make_manager(SequenceProbe([True, False]))

        await manager.stop_service()

        assert process_control.operations == ["stop"]
        status = await manager.get_status()
        assert status.state == ServiceState.STOPPED
        assert status.running is False
        assert status.pid is None

    @pytest.mark.asyncio
    async def test_waits_for_port_release(
        self, make_manager, clock: FakeClock, process_control: FakeProcessControl
    ) -> None:
        """Should keep polling while the port still answers after the stop."""
        process_control.running = True
        manager = make_manager(SequenceProbe([True, True, True, False]))

        await manager.stop_service()

        assert process_control.operations == ["stop"]
        assert clock.sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_escalates_to_force_once(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should force-stop exactly once when the graceful stop fails."""
        process_control.running = True
        process_control.stop_error = ProcessError("timeout", "ollama", "stop")
        manager = make_manager(SequenceProbe([True, False]))

        await manager.stop_service()

        assert process_control.operations == ["stop", "force_stop"]
        assert (await manager.get_status()).state == ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_both_stops_fail(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should raise ProcessError and enter error when forced stop also fails."""
        process_control.running = True
        process_control.stop_error = ProcessError("timeout", "ollama", "stop")
        process_control.force_error = ProcessError("access denied", "ollama", "stop")
        manager = make_manager(SequenceProbe([True, False]))

        with pytest.raises(ProcessError) as exc_info:
            await manager.stop_service()

        assert exc_info.value.operation == "stop"
        assert process_control.operations == ["stop", "force_stop"]
        status = await manager.get_status()
        assert status.state == ServiceState.ERROR
        assert status.last_error == "access denied"

    @pytest.mark.asyncio
    async def test_unclassified_force_failure_is_process_error(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should report a non-ProcessError forced-stop failure as ProcessError."""
        process_control.running = True
        process_control.stop_error = RuntimeError("signal refused")
        process_control.force_error = RuntimeError("kill refused")
        manager = make_manager(SequenceProbe([True, False]))

        with pytest.raises(ProcessError) as exc_info:
            await manager.stop_service()

        assert exc_info.value.process_name == "ollama"
        assert isinstance(exc_info.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_forces_when_port_stays_up(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should escalate once when the service keeps answering after a graceful stop."""
        process_control.running = True
        # Initial check, five confirmation polls, then down after the forced stop
        manager = make_manager(SequenceProbe([True] * 6 + [False]))

        await manager.stop_service()

        assert process_control.operations == ["stop", "force_stop"]
        assert (await manager.get_status()).state == ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_unconfirmed_stop_times_out(
        self, make_manager, process_control: FakeProcessControl
    ) -> None:
        """Should raise a stop timeout when the service never goes down."""
        process_control.running = True
        manager = make_manager(SequenceProbe([True]))

        with pytest.raises(ServiceTimeoutError) as exc_info:
            await manager.stop_service()

        assert exc_info.value.operation == "stop"
        assert exc_info.value.timeout_ms == 5000
        assert process_control.operations == ["stop", "force_stop"]
        assert manager._status.state == ServiceState.ERROR


class TestStatus:
    """Tests for get_status and check_health."""

    @pytest.mark.asyncio
    async def test_status_never_stale(self, make_manager) -> None:
        """Should reflect a probe change without an explicit start."""
        manager = make_manager(SequenceProbe([False, True, False]))

        first = await manager.get_status()
        second = await manager.get_status()
        third = await manager.get_status()

        assert first.state == ServiceState.STOPPED
        assert second.state == ServiceState.RUNNING
        assert second.running is True
        assert third.state == ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_status_is_a_copy(self, make_manager) -> None:
        """Should not let callers mutate the manager's status."""
        manager = make_manager(SequenceProbe([True]))

        status = await manager.get_status()
        status.state = ServiceState.ERROR
        status.running = False

        assert (await manager.get_status()).state == ServiceState.RUNNING

    @pytest.mark.asyncio
    async def test_check_health_has_no_side_effect(self, make_manager) -> None:
        """Should leave stored state untouched."""
        manager = make_manager(SequenceProbe([True]))

        assert await manager.check_health() is True
        assert manager._status.state == ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_wait_for_health_with_external_probe(self, make_manager) -> None:
        """Should wait on a given probe and mark the service running."""
        own_probe = SequenceProbe([False])
        manager = make_manager(own_probe)

        await manager.wait_for_health(SequenceProbe([False, True]))

        assert own_probe.calls == 0
        assert manager._status.state == ServiceState.RUNNING
        assert manager._status.running is True

    @pytest.mark.asyncio
    async def test_close_releases_probe(self, make_manager) -> None:
        """Should close the probe when used as a context manager."""
        probe = SequenceProbe([False])

        async with make_manager(probe):
            pass

        assert probe.closed is True
