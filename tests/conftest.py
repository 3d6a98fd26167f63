"""
Pytest configuration and shared fixtures.

Provides:
- make_settings: Settings built from keyword arguments only (no env, no .env)
- clock: a controllable clock for the StateTracker
- status: InterfaceStatus factory
"""

from datetime import datetime, timedelta, timezone

import pytest

from wan_monitor.config import Settings
from wan_monitor.schemas import InterfaceStatus, LinkStatus

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {
            "fetch_method": "api",
            "sonicwall_base_url": "https://fw.example.test",
            "sonicwall_username": "admin",
            "sonicwall_password": "secret",
            "sonicwall_wan_interfaces": "X1,X2",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def status():
    def _status(name: str, link: LinkStatus = LinkStatus.UP, **fields) -> InterfaceStatus:
        return InterfaceStatus(name=name, link_status=link, **fields)
    return _status
