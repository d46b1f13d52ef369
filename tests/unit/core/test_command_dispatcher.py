"""Unit tests for CommandDispatcher."""

import asyncio

import pytest

from config.exceptions import NetworkError
from statuslight.src.core.command_dispatcher import CommandDispatcher
from statuslight.src.core.device_registry import DeviceRegistry
from statuslight.src.models import RGBColor
from tests.conftest import make_device

RED = RGBColor(r=255, g=0, b=0)
GREEN = RGBColor(r=0, g=255, b=0)


class RecordingSink:
    """Color sink recording commands; selected devices fail."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def set_color(self, device, color):
        await asyncio.sleep(0)
        if device.id in self.failing:
            raise NetworkError("device offline")
        self.sent.append((device.id, color))


@pytest.fixture
async def registry():
    registry = DeviceRegistry()
    await registry.replace_devices(
        [make_device("dev-1", name="Desk"), make_device("dev-2", name="Shelf")]
    )
    return registry


class TestCommandDispatcher:
    @pytest.mark.asyncio
    async def test_sends_to_every_changed_device(self, registry):
        sink = RecordingSink()
        dispatcher = CommandDispatcher(registry, sink)

        results = await dispatcher.dispatch({"dev-1": RED, "dev-2": GREEN})

        assert all(r.success for r in results)
        assert sorted(sink.sent, key=lambda s: s[0]) == [("dev-1", RED), ("dev-2", GREEN)]
        assert registry.last_sent_color("dev-1") == RED

    @pytest.mark.asyncio
    async def test_unchanged_color_is_not_resent(self, registry):
        sink = RecordingSink()
        dispatcher = CommandDispatcher(registry, sink)
        await dispatcher.dispatch({"dev-1": RED})

        results = await dispatcher.dispatch({"dev-1": RED})

        assert results == []
        assert len(sink.sent) == 1

    @pytest.mark.asyncio
    async def test_failure_is_isolated_per_device(self, registry):
        """One device failing never blocks or fails its sibling."""
        sink = RecordingSink(failing={"dev-1"})
        dispatcher = CommandDispatcher(registry, sink)

        results = {r.device_id: r for r in await dispatcher.dispatch({"dev-1": RED, "dev-2": RED})}

        assert results["dev-1"].success is False
        assert results["dev-1"].error_type == "NetworkError"
        assert "Desk" in results["dev-1"].error
        assert results["dev-2"].success is True
        assert registry.get("dev-1").is_connected is False
        assert registry.last_sent_color("dev-1") is None

    @pytest.mark.asyncio
    async def test_failed_device_is_retried_next_time(self, registry):
        sink = RecordingSink(failing={"dev-1"})
        dispatcher = CommandDispatcher(registry, sink)
        await dispatcher.dispatch({"dev-1": RED})

        sink.failing.clear()
        results = await dispatcher.dispatch({"dev-1": RED})

        assert [r.success for r in results] == [True]

    @pytest.mark.asyncio
    async def test_inactive_devices_are_skipped(self, registry):
        await registry.set_active("dev-2", False)
        sink = RecordingSink()
        dispatcher = CommandDispatcher(registry, sink)

        await dispatcher.dispatch({"dev-1": RED, "dev-2": RED})

        assert sink.sent == [("dev-1", RED)]

    @pytest.mark.asyncio
    async def test_overlapping_dispatch_does_not_duplicate(self, registry):
        sink = RecordingSink()
        dispatcher = CommandDispatcher(registry, sink)

        await asyncio.gather(
            dispatcher.dispatch({"dev-1": RED}),
            dispatcher.dispatch({"dev-1": RED}),
        )

        assert sink.sent == [("dev-1", RED)]

    @pytest.mark.asyncio
    async def test_send_one_ignores_change_detection(self, registry):
        sink = RecordingSink()
        dispatcher = CommandDispatcher(registry, sink)
        await dispatcher.dispatch({"dev-1": RED})

        result = await dispatcher.send_one("dev-1", RED)

        assert result.success is True
        assert len(sink.sent) == 2
