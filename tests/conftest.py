"""
Shared pytest fixtures for StatusLight tests.

This file provides:
- Repo root on PYTHONPATH
- Fake clock / sleep for time-dependent code
- In-memory secret store and sample domain objects

Note: the event loop is handled by pytest-asyncio in auto mode
(see [tool.pytest.ini_options] in pyproject.toml).
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# ==========================================
# PYTHONPATH Setup
# ==========================================

# Add repo root to PYTHONPATH once for every test module
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from statuslight.src.adapters.secret_store import InMemorySecretStore  # noqa: E402
from statuslight.src.models import (  # noqa: E402
    BusyStatus,
    CalendarEvent,
    Device,
    DeviceCapability,
    Presence,
    PresenceState,
)
from statuslight.src.models.device import COLOR_SETTING_CAPABILITY, ON_OFF_CAPABILITY  # noqa: E402

NOW = datetime(2025, 3, 10, 9, 0, 0, tzinfo=timezone.utc)


# ==========================================
# Time helpers
# ==========================================


class FakeClock:
    """Monotonic clock advanced explicitly (or by FakeSleep)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested sleeps and advances the paired clock instantly."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(fake_clock):
    return FakeSleep(fake_clock)


@pytest.fixture
def now():
    """Fixed evaluation instant shared by time-dependent tests."""
    return NOW


# ==========================================
# Domain factories
# ==========================================


def make_event(
    start_in_minutes: float,
    duration_minutes: float = 30,
    show_as: BusyStatus = BusyStatus.BUSY,
    event_id: str = "evt-1",
    now: datetime = NOW,
    subject: str = "Sprint review",
) -> CalendarEvent:
    start = now + timedelta(minutes=start_in_minutes)
    return CalendarEvent(
        id=event_id,
        subject=subject,
        start=start,
        end=start + timedelta(minutes=duration_minutes),
        show_as=show_as,
    )


def make_device(
    device_id: str = "AA:BB:CC:DD:EE:FF:00:11",
    sku: str = "H6159",
    name: str = "Desk strip",
    color: bool = True,
) -> Device:
    capabilities = [DeviceCapability(type=ON_OFF_CAPABILITY, instance="powerSwitch")]
    if color:
        capabilities.append(DeviceCapability(type=COLOR_SETTING_CAPABILITY, instance="colorRgb"))
    return Device(id=device_id, sku=sku, device_name=name, capabilities=capabilities)


def make_presence(presence: Presence, activity: str = None) -> PresenceState:
    return PresenceState(presence=presence, activity=activity, observed_at=NOW)


@pytest.fixture
def secret_store():
    return InMemorySecretStore()


@pytest.fixture
def device():
    return make_device()
