"""Shared fixtures for service supervisor tests."""

from __future__ import annotations

from typing import Optional

import pytest

from service_supervisor.models import ServiceConfig
from service_supervisor.platforms import UnixServiceManager
from tests.fakes import FakeClock, FakeProcessControl, SequenceProbe, make_config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def process_control() -> FakeProcessControl:
    return FakeProcessControl()


@pytest.fixture
def make_manager(clock: FakeClock, process_control: FakeProcessControl):
    """Factory for a Unix manager wired to fakes."""

    def _make(probe: SequenceProbe, config: Optional[ServiceConfig] = None) -> UnixServiceManager:
        return UnixServiceManager(
            config or make_config(),
            process_control=process_control,
            probe=probe,
            clock=clock,
            sleep=clock.sleep,
        )

    return _make
