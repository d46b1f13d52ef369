"""Unit tests for DeviceRegistry."""

import json

import pytest

from config.exceptions import DeviceNotFoundError
from statuslight.src.adapters.secret_store import InMemorySecretStore, SecretKeys
from statuslight.src.core.device_registry import DeviceRegistry
from statuslight.src.models import DeviceAssignment, RGBColor
from tests.conftest import make_device

RED = RGBColor(r=255, g=0, b=0)


@pytest.fixture
def devices():
    return [
        make_device("dev-1", name="Desk strip"),
        make_device("dev-2", name="Shelf bulb"),
        make_device("plug-1", sku="H5080", name="Smart plug", color=False),
    ]


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_first_discovery_selects_color_devices(self, devices, secret_store):
        registry = DeviceRegistry(secret_store)

        await registry.replace_devices(devices)

        assert registry.selected_ids == {"dev-1", "dev-2"}
        stored = json.loads(secret_store.snapshot()[SecretKeys.SELECTED_DEVICES])
        assert stored == ["dev-1", "dev-2"]

    @pytest.mark.asyncio
    async def test_stored_selection_is_respected(self, devices):
        store = InMemorySecretStore({SecretKeys.SELECTED_DEVICES: json.dumps(["dev-2"])})
        registry = DeviceRegistry(store)
        await registry.load()

        await registry.replace_devices(devices)

        assert registry.selected_ids == {"dev-2"}
        assert [d.id for d in registry.active_devices()] == ["dev-2"]

    @pytest.mark.asyncio
    async def test_empty_stored_selection_selects_nothing(self, devices):
        store = InMemorySecretStore({SecretKeys.SELECTED_DEVICES: "[]"})
        registry = DeviceRegistry(store)
        await registry.load()

        await registry.replace_devices(devices)

        assert registry.active_devices() == []

    @pytest.mark.asyncio
    async def test_active_flags_survive_rediscovery(self, devices, secret_store):
        registry = DeviceRegistry(secret_store)
        await registry.replace_devices(devices)
        await registry.set_active("dev-1", False)

        reloaded = DeviceRegistry(secret_store)
        await reloaded.load()
        await reloaded.replace_devices(devices)

        assert reloaded.get("dev-1").is_active is False
        assert [d.id for d in reloaded.active_devices()] == ["dev-2"]

    @pytest.mark.asyncio
    async def test_vanished_devices_forget_last_sent(self, devices):
        registry = DeviceRegistry()
        await registry.replace_devices(devices)
        registry.mark_result("dev-1", success=True, color=RED)

        await registry.replace_devices(devices[1:])

        assert registry.last_sent_color("dev-1") is None

    def test_unknown_device_raises(self):
        with pytest.raises(DeviceNotFoundError):
            DeviceRegistry().get("missing")


class TestSelectionAndActive:
    @pytest.mark.asyncio
    async def test_toggle_selection(self, devices, secret_store):
        registry = DeviceRegistry(secret_store)
        await registry.replace_devices(devices)

        assert await registry.toggle_selection("dev-1") is False
        assert await registry.toggle_selection("dev-1") is True
        assert registry.is_selected("dev-1")

    @pytest.mark.asyncio
    async def test_turning_off_clears_last_sent(self, devices):
        registry = DeviceRegistry()
        await registry.replace_devices(devices)
        registry.mark_result("dev-1", success=True, color=RED)

        await registry.set_active("dev-1", False)

        assert registry.last_sent_color("dev-1") is None

    @pytest.mark.asyncio
    async def test_mark_result_tracks_reachability(self, devices):
        registry = DeviceRegistry()
        await registry.replace_devices(devices)

        registry.mark_result("dev-1", success=False)
        assert registry.get("dev-1").is_connected is False
        assert registry.last_sent_color("dev-1") is None

        registry.mark_result("dev-1", success=True, color=RED)
        assert registry.get("dev-1").is_connected is True
        assert registry.last_sent_color("dev-1") == RED


class TestAssignments:
    @pytest.mark.asyncio
    async def test_default_assignment_is_teams_status(self):
        assert DeviceRegistry().assignment_for("dev-1") == DeviceAssignment.TEAMS_STATUS

    @pytest.mark.asyncio
    async def test_assignment_persisted_and_reloaded(self, secret_store):
        registry = DeviceRegistry(secret_store)
        await registry.set_assignment("dev-1", DeviceAssignment.BOTH)

        reloaded = DeviceRegistry(secret_store)
        await reloaded.load()

        assert reloaded.assignment_for("dev-1") == DeviceAssignment.BOTH
        assert reloaded.tracker_device_ids() == {"dev-1"}

    @pytest.mark.asyncio
    async def test_unknown_stored_assignment_is_ignored(self):
        store = InMemorySecretStore(
            {SecretKeys.DEVICE_ASSIGNMENTS: json.dumps({"dev-1": "disco", "dev-2": "both"})}
        )
        registry = DeviceRegistry(store)

        await registry.load()

        assert registry.assignment_for("dev-1") == DeviceAssignment.TEAMS_STATUS
        assert registry.assignment_for("dev-2") == DeviceAssignment.BOTH

    @pytest.mark.asyncio
    async def test_static_assignments_do_not_override_stored(self, secret_store):
        registry = DeviceRegistry(secret_store)
        await registry.set_assignment("dev-1", DeviceAssignment.TEAMS_STATUS)

        registry.apply_assignments(
            {"dev-1": DeviceAssignment.MEETING_TRACKER, "dev-2": DeviceAssignment.BOTH}
        )

        assert registry.assignment_for("dev-1") == DeviceAssignment.TEAMS_STATUS
        assert registry.assignment_for("dev-2") == DeviceAssignment.BOTH

    @pytest.mark.asyncio
    async def test_devices_split_by_feature(self, devices):
        registry = DeviceRegistry()
        await registry.replace_devices(devices)
        await registry.set_assignment("dev-1", DeviceAssignment.MEETING_TRACKER)

        assert [d.id for d in registry.devices_for_tracker()] == ["dev-1"]
        assert [d.id for d in registry.devices_for_presence()] == ["dev-2"]
