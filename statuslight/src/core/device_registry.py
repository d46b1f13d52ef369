"""
Device registry - known devices and per-device user preferences.

Tracks discovery results, selection, on/off toggles, assignments and the
last color actually sent to each device. Preferences are persisted in the
secret store so they survive restarts.
"""

from typing import Dict, List, Optional, Set

import structlog

from config.exceptions import DeviceNotFoundError
from statuslight.src.adapters.secret_store import SecretKeys, SecretStore
from statuslight.src.models import Device, DeviceAssignment, RGBColor, utcnow

logger = structlog.get_logger(__name__)


class DeviceRegistry:
    """In-memory registry backed by a :class:`SecretStore`.

    Selection semantics: ``None`` means no selection was ever stored, in
    which case discovery auto-selects every color-capable device.
    """

    def __init__(self, store: Optional[SecretStore] = None):
        self.store = store
        self._devices: Dict[str, Device] = {}
        self._assignments: Dict[str, DeviceAssignment] = {}
        self._selected: Optional[Set[str]] = None
        self._active_states: Dict[str, bool] = {}
        self._last_sent: Dict[str, RGBColor] = {}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Restore selection, active flags and assignments from the store."""
        if self.store is None:
            return

        selected = await self.store.retrieve_json(SecretKeys.SELECTED_DEVICES)
        if selected is not None:
            self._selected = {str(d) for d in selected}

        active_states = await self.store.retrieve_json(SecretKeys.DEVICE_ACTIVE_STATES)
        if active_states:
            self._active_states = {str(k): bool(v) for k, v in active_states.items()}

        assignments = await self.store.retrieve_json(SecretKeys.DEVICE_ASSIGNMENTS)
        if assignments:
            for device_id, raw in assignments.items():
                try:
                    self._assignments[str(device_id)] = DeviceAssignment(raw)
                except ValueError:
                    logger.warning(
                        "unknown_device_assignment_ignored",
                        device_id=device_id,
                        assignment=raw,
                    )

        logger.info(
            "device_registry_loaded",
            selected=len(self._selected) if self._selected is not None else None,
            assignments=len(self._assignments),
        )

    async def _persist_selection(self) -> None:
        if self.store is not None and self._selected is not None:
            await self.store.store_json(sorted(self._selected), SecretKeys.SELECTED_DEVICES)

    async def _persist_active_states(self) -> None:
        if self.store is not None:
            await self.store.store_json(self._active_states, SecretKeys.DEVICE_ACTIVE_STATES)

    async def _persist_assignments(self) -> None:
        if self.store is not None:
            await self.store.store_json(
                {k: v.value for k, v in self._assignments.items()},
                SecretKeys.DEVICE_ASSIGNMENTS,
            )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def replace_devices(self, devices: List[Device]) -> List[Device]:
        """Replace the known device set with a discovery result.

        Stored active flags are re-applied. If no selection was ever stored,
        every color-capable device is selected and the selection persisted.
        """
        self._devices = {}
        for device in devices:
            is_active = self._active_states.get(device.id, device.is_active)
            self._devices[device.id] = device.model_copy(
                update={"is_active": is_active, "is_connected": True, "last_updated": utcnow()}
            )

        if self._selected is None:
            self._selected = {d.id for d in devices if d.supports_color}
            await self._persist_selection()
            logger.info("devices_auto_selected", count=len(self._selected))

        # Colors sent to devices that vanished are meaningless now
        for device_id in list(self._last_sent):
            if device_id not in self._devices:
                del self._last_sent[device_id]

        logger.info(
            "devices_replaced",
            total=len(self._devices),
            selected=len(self.selected_devices()),
        )
        return self.devices

    def clear_devices(self) -> None:
        """Forget discovered devices (API key removed); preferences are kept."""
        self._devices = {}
        self._last_sent.clear()

    @property
    def devices(self) -> List[Device]:
        return list(self._devices.values())

    def get(self, device_id: str) -> Device:
        try:
            return self._devices[device_id]
        except KeyError:
            raise DeviceNotFoundError("Unknown device '%s'" % device_id) from None

    # ------------------------------------------------------------------
    # Selection / active flag
    # ------------------------------------------------------------------

    @property
    def selected_ids(self) -> Set[str]:
        return set(self._selected or ())

    def is_selected(self, device_id: str) -> bool:
        return device_id in (self._selected or ())

    def selected_devices(self) -> List[Device]:
        return [d for d in self._devices.values() if self.is_selected(d.id)]

    async def select(self, device_id: str) -> None:
        if self._selected is None:
            self._selected = set()
        self._selected.add(device_id)
        await self._persist_selection()

    async def deselect(self, device_id: str) -> None:
        if self._selected is None:
            self._selected = set()
        self._selected.discard(device_id)
        self._last_sent.pop(device_id, None)
        await self._persist_selection()

    async def toggle_selection(self, device_id: str) -> bool:
        """Flip selection, returns the new selected flag."""
        if self.is_selected(device_id):
            await self.deselect(device_id)
            return False
        await self.select(device_id)
        return True

    async def set_active(self, device_id: str, is_active: bool) -> Device:
        device = self.get(device_id)
        updated = device.model_copy(update={"is_active": is_active})
        self._devices[device_id] = updated
        self._active_states[device_id] = is_active
        if not is_active:
            self._last_sent.pop(device_id, None)
        await self._persist_active_states()
        return updated

    def active_devices(self) -> List[Device]:
        """Selected devices the user has not switched off."""
        return [d for d in self.selected_devices() if d.is_active]

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assignment_for(self, device_id: str) -> DeviceAssignment:
        return self._assignments.get(device_id, DeviceAssignment.TEAMS_STATUS)

    async def set_assignment(self, device_id: str, assignment: DeviceAssignment) -> None:
        self._assignments[device_id] = assignment
        await self._persist_assignments()
        logger.info(
            "device_assignment_updated",
            device_id=device_id,
            assignment=assignment.value,
        )

    def apply_assignments(self, assignments: Dict[str, DeviceAssignment]) -> None:
        """Seed assignments from static config without overriding stored ones."""
        for device_id, assignment in assignments.items():
            self._assignments.setdefault(str(device_id), assignment)

    def tracker_device_ids(self) -> Set[str]:
        return {k for k, v in self._assignments.items() if v.uses_tracker}

    def devices_for_tracker(self) -> List[Device]:
        return [d for d in self.active_devices() if self.assignment_for(d.id).uses_tracker]

    def devices_for_presence(self) -> List[Device]:
        return [d for d in self.active_devices() if self.assignment_for(d.id).uses_presence]

    # ------------------------------------------------------------------
    # Command bookkeeping
    # ------------------------------------------------------------------

    def last_sent_color(self, device_id: str) -> Optional[RGBColor]:
        return self._last_sent.get(device_id)

    def forget_last_sent(self, device_id: Optional[str] = None) -> None:
        """Force the next recompute to resend (one device, or all)."""
        if device_id is None:
            self._last_sent.clear()
        else:
            self._last_sent.pop(device_id, None)

    def mark_result(
        self, device_id: str, success: bool, color: Optional[RGBColor] = None
    ) -> Optional[Device]:
        """Record a command outcome on the device.

        Success marks the device reachable and remembers ``color`` as the
        last sent color; failure only marks it unreachable.
        """
        device = self._devices.get(device_id)
        if device is None:
            return None

        if success:
            updated = device.model_copy(update={"is_connected": True, "last_updated": utcnow()})
            if color is not None:
                self._last_sent[device_id] = color
        else:
            updated = device.model_copy(update={"is_connected": False})

        self._devices[device_id] = updated
        return updated
