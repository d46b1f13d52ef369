"""
StatusLight engine - wires sources, decision logic and device dispatch.

Two independent pollers (presence, calendar) publish the latest snapshot
into most-recent-wins observable cells; every update, plus a low-frequency
safety timer, triggers a recompute that resolves one color per device and
dispatches only the colors that changed.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from config.exceptions import (
    AuthExpiredError,
    ConfigurationError,
    NotAuthenticatedError,
    StatusLightError,
)
from statuslight.src.adapters.secret_store import SecretKeys, SecretStore
from statuslight.src.core.command_dispatcher import CommandDispatcher, DispatchResult
from statuslight.src.core.device_registry import DeviceRegistry
from statuslight.src.core.meeting_tracker import (
    MeetingCountdownEngine,
    MeetingTrackerConfig,
    MeetingTrackerState,
)
from statuslight.src.core.observable import ObservableValue
from statuslight.src.core.polling import PollingWorker, clamp_interval
from statuslight.src.core.priority_resolver import resolve_target_color
from statuslight.src.integrations.govee.client import GoveeClient
from statuslight.src.integrations.microsoft_graph.auth import TokenLifecycleManager
from statuslight.src.integrations.microsoft_graph.client import MicrosoftGraphClient
from statuslight.src.models import (
    CalendarEvent,
    ColorMapping,
    ConnectionStatus,
    Device,
    DeviceAssignment,
    PresenceState,
    RGBColor,
    utcnow,
)

logger = structlog.get_logger(__name__)


class StatusLightEngine:
    """
    Application core, all collaborators injected.

    Observables (read-only for the presentation layer):
        presence, events, tracker_state, devices, auth_state, last_error,
        teams_status, govee_status, current_color
    """

    def __init__(
        self,
        *,
        token_manager: TokenLifecycleManager,
        graph_client: MicrosoftGraphClient,
        govee_client: GoveeClient,
        registry: DeviceRegistry,
        dispatcher: CommandDispatcher,
        tracker: MeetingCountdownEngine,
        store: SecretStore,
        color_mapping: Optional[ColorMapping] = None,
        presence_interval: float = 15.0,
        calendar_interval: float = 60.0,
        safety_interval: float = 60.0,
        calendar_lookahead_hours: int = 24,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.token_manager = token_manager
        self.graph_client = graph_client
        self.govee_client = govee_client
        self.registry = registry
        self.dispatcher = dispatcher
        self.tracker = tracker
        self.store = store
        self.color_mapping = color_mapping or ColorMapping.default()
        self.calendar_lookahead_hours = calendar_lookahead_hours
        self._clock = clock

        self.presence: ObservableValue[Optional[PresenceState]] = ObservableValue(
            "presence", None
        )
        self.events: ObservableValue[List[CalendarEvent]] = ObservableValue("events", [])
        self.tracker_state: ObservableValue[MeetingTrackerState] = ObservableValue(
            "tracker_state", MeetingTrackerState.idle()
        )
        self.devices: ObservableValue[List[Device]] = ObservableValue("devices", [])
        self.auth_state = token_manager.state
        self.last_error: ObservableValue[Optional[str]] = ObservableValue("last_error", None)
        self.teams_status = ObservableValue("teams_status", ConnectionStatus.disconnected())
        self.govee_status = ObservableValue("govee_status", ConnectionStatus.disconnected())
        self.current_color: ObservableValue[Optional[RGBColor]] = ObservableValue(
            "current_color", None
        )

        self.presence_poller = PollingWorker(
            "presence", self.refresh_presence, presence_interval, on_error=self._on_poll_error
        )
        self.calendar_poller = PollingWorker(
            "calendar", self.refresh_calendar, calendar_interval, on_error=self._on_poll_error
        )
        self.safety_timer = PollingWorker(
            "safety_recompute", self.recompute, safety_interval, on_error=self._on_poll_error
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load persisted state, start polling when signed in, first recompute."""
        logger.info("engine_starting")

        await self.load_persisted_state()

        if self.govee_client.is_configured:
            try:
                await self.refresh_devices()
            except StatusLightError as e:
                logger.warning("initial_device_discovery_failed", error=str(e))

        if await self.token_manager.load():
            self._start_monitoring()

        # Safety timer's first tick is the initial recompute
        self.safety_timer.start()
        logger.info(
            "engine_started",
            authenticated=self.token_manager.is_authenticated,
            govee_configured=self.govee_client.is_configured,
        )

    async def stop(self) -> None:
        await self.presence_poller.stop()
        await self.calendar_poller.stop()
        await self.safety_timer.stop()
        logger.info("engine_stopped")

    async def load_persisted_state(self) -> None:
        await self.registry.load()

        api_key = await self.store.retrieve(SecretKeys.GOVEE_API_KEY)
        if api_key:
            self.govee_client.set_api_key(api_key)

        tracker_data = await self.store.retrieve_json(SecretKeys.MEETING_TRACKER_CONFIG)
        if tracker_data:
            try:
                self.tracker.update_config(MeetingTrackerConfig.model_validate(tracker_data))
            except ValidationError as e:
                logger.warning("stored_tracker_config_invalid", error=str(e))

        mapping_data = await self.store.retrieve_json(SecretKeys.COLOR_MAPPING)
        if mapping_data:
            try:
                self.color_mapping = ColorMapping.model_validate(mapping_data)
            except ValidationError as e:
                logger.warning("stored_color_mapping_invalid", error=str(e))

        interval = await self.store.retrieve_json(SecretKeys.PRESENCE_POLL_INTERVAL)
        if interval is not None:
            self.presence_poller.update_interval(float(interval))

        # Devices opted in to the tracker default to tracker-only
        self.registry.apply_assignments(
            {d: DeviceAssignment.MEETING_TRACKER for d in self.tracker.config.assigned_device_ids}
        )

    def _start_monitoring(self) -> None:
        self.teams_status.set(ConnectionStatus.connected())
        self.presence_poller.start()
        self.calendar_poller.start()

    async def _stop_monitoring(self) -> None:
        await self.presence_poller.stop()
        await self.calendar_poller.stop()

    def _on_poll_error(self, error: Exception) -> None:
        self.last_error.set(str(error))
        if isinstance(error, AuthExpiredError):
            # Session is gone: no further calls with a cleared token
            self.teams_status.set(ConnectionStatus.error(str(error)))
            self.presence_poller.request_stop()
            self.calendar_poller.request_stop()
        elif isinstance(error, NotAuthenticatedError) and not self.token_manager.is_authenticated:
            self.teams_status.set(ConnectionStatus.disconnected())
            self.presence_poller.request_stop()
            self.calendar_poller.request_stop()

    # ------------------------------------------------------------------
    # Teams / Graph
    # ------------------------------------------------------------------

    async def authenticate_teams(self) -> None:
        self.teams_status.set(ConnectionStatus.connecting())
        try:
            await self.token_manager.authenticate()
        except StatusLightError as e:
            self.teams_status.set(ConnectionStatus.error(str(e)))
            self.last_error.set(str(e))
            raise

        self._start_monitoring()

    async def sign_out(self) -> None:
        """Clear the session without waiting on in-flight poll ticks."""
        self.presence_poller.request_stop()
        self.calendar_poller.request_stop()
        # A late refresh result is discarded by the token manager
        await self.token_manager.sign_out()
        await self._stop_monitoring()

        self.presence.set(None)
        self.events.set([])
        self.tracker_state.set(self.tracker.update_events([]))
        self.teams_status.set(ConnectionStatus.disconnected())
        await self.recompute()

    async def refresh_presence(self) -> None:
        state = await self.graph_client.get_presence()
        self.presence.set(state)
        self.teams_status.set(ConnectionStatus.connected())
        await self.recompute()

    async def refresh_calendar(self) -> None:
        events = await self.graph_client.get_calendar_view(hours=self.calendar_lookahead_hours)
        self.events.set(events)
        self.tracker.update_events(events)
        await self.recompute()

    async def refresh_status(self) -> None:
        """Manual refresh of both upstream signals."""
        if not self.token_manager.is_authenticated:
            raise NotAuthenticatedError("Not signed in to Microsoft Teams")
        await self.presence_poller.run_once()
        await self.calendar_poller.run_once()

    async def update_presence_interval(self, seconds: float) -> float:
        interval = self.presence_poller.update_interval(clamp_interval(seconds))
        await self.store.store_json(interval, SecretKeys.PRESENCE_POLL_INTERVAL)
        return interval

    # ------------------------------------------------------------------
    # Govee
    # ------------------------------------------------------------------

    async def configure_govee_api_key(self, api_key: str) -> List[Device]:
        """Validate, store and start using a Govee API key."""
        key = (api_key or "").strip()
        if not key:
            self.govee_status.set(ConnectionStatus.error("API key cannot be empty"))
            raise ConfigurationError("API key cannot be empty")

        self.govee_status.set(ConnectionStatus.connecting())
        try:
            valid = await self.govee_client.validate_api_key(key)
        except StatusLightError as e:
            self.govee_status.set(ConnectionStatus.error(str(e)))
            raise

        if not valid:
            message = "Invalid API key - please check your key and try again"
            self.govee_status.set(ConnectionStatus.error(message))
            raise NotAuthenticatedError(message)

        await self.store.store(key, SecretKeys.GOVEE_API_KEY)
        self.govee_client.set_api_key(key)
        self.govee_status.set(ConnectionStatus.connected())
        logger.info("govee_api_key_configured")
        return await self.refresh_devices()

    async def remove_govee_api_key(self) -> None:
        await self.store.delete(SecretKeys.GOVEE_API_KEY)
        self.govee_client.set_api_key(None)
        self.registry.clear_devices()
        self.devices.set([])
        self.govee_status.set(ConnectionStatus.disconnected())
        logger.info("govee_api_key_removed")

    async def refresh_devices(self) -> List[Device]:
        try:
            discovered = await self.govee_client.discover_devices()
        except StatusLightError as e:
            self.govee_status.set(ConnectionStatus.error(str(e)))
            self.last_error.set(str(e))
            raise

        devices = await self.registry.replace_devices(discovered)
        self.devices.set(devices)
        self.govee_status.set(ConnectionStatus.connected())
        await self.recompute()
        return self.registry.devices

    async def toggle_device_active(self, device_id: str) -> Device:
        """Flip a device on/off; the power command is reverted on failure."""
        device = self.registry.get(device_id)
        turn_on = not device.is_active
        await self.registry.set_active(device_id, turn_on)

        try:
            await self.govee_client.set_power(device, turn_on)
        except StatusLightError as e:
            await self.registry.set_active(device_id, device.is_active)
            self.registry.mark_result(device_id, success=False)
            self.devices.set(self.registry.devices)
            self.last_error.set(
                "Failed to turn %s %s: %s" % (device.device_name, "on" if turn_on else "off", e)
            )
            raise

        self.registry.mark_result(device_id, success=True)
        self.devices.set(self.registry.devices)
        logger.info("device_toggled", device_id=device_id, active=turn_on)
        if turn_on:
            await self.recompute()
        return self.registry.get(device_id)

    async def test_color(self, device_id: str, color: RGBColor) -> DispatchResult:
        """Send an arbitrary color to one device; the next recompute restores it."""
        result = await self.dispatcher.send_one(device_id, color)
        self.devices.set(self.registry.devices)
        if result.success:
            self.current_color.set(color)
        else:
            self.last_error.set(result.error)
        return result

    async def set_brightness(self, device_id: str, level: int) -> None:
        device = self.registry.get(device_id)
        try:
            await self.govee_client.set_brightness(device, level)
        except StatusLightError as e:
            self.registry.mark_result(device_id, success=False)
            self.devices.set(self.registry.devices)
            self.last_error.set("Failed to set brightness on %s: %s" % (device.device_name, e))
            raise
        self.registry.mark_result(device_id, success=True)
        self.devices.set(self.registry.devices)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def set_device_assignment(self, device_id: str, assignment: DeviceAssignment) -> None:
        await self.registry.set_assignment(device_id, assignment)

        assigned = set(self.tracker.config.assigned_device_ids)
        if assignment.uses_tracker:
            assigned.add(device_id)
        else:
            assigned.discard(device_id)
        if assigned != self.tracker.config.assigned_device_ids:
            await self.update_tracker_config(
                self.tracker.config.model_copy(update={"assigned_device_ids": assigned}),
                recompute=False,
            )

        await self.recompute()

    async def update_tracker_config(
        self, config: MeetingTrackerConfig, recompute: bool = True
    ) -> None:
        self.tracker_state.set(self.tracker.update_config(config))
        await self.store.store_json(
            config.model_dump(mode="json"), SecretKeys.MEETING_TRACKER_CONFIG
        )
        if recompute:
            await self.recompute()

    async def update_color_mapping(self, mapping: ColorMapping) -> None:
        self.color_mapping = mapping
        await self.store.store_json(mapping.model_dump(mode="json"), SecretKeys.COLOR_MAPPING)
        await self.recompute()

    # ------------------------------------------------------------------
    # Decision + dispatch
    # ------------------------------------------------------------------

    def compute_targets(self, now: Optional[datetime] = None) -> Dict[str, RGBColor]:
        """Target color for every active device, from the latest snapshots."""
        now = now or self._clock()
        tracker_state = self.tracker.recalculate(now)
        self.tracker_state.set(tracker_state)

        presence = self.presence.value
        events = self.events.value
        return {
            device.id: resolve_target_color(
                self.registry.assignment_for(device.id),
                presence=presence,
                events=events,
                tracker_state=tracker_state,
                tracker_config=self.tracker.config,
                mapping=self.color_mapping,
                now=now,
            )
            for device in self.registry.active_devices()
        }

    async def recompute(self) -> List[DispatchResult]:
        """Resolve and dispatch; failures are published, never raised."""
        targets = self.compute_targets()
        if not targets:
            return []

        results = await self.dispatcher.dispatch(targets)
        if not results:
            return results

        self.devices.set(self.registry.devices)
        for result in results:
            if result.success:
                self.current_color.set(result.color)
            else:
                self.last_error.set(result.error)

        logger.info(
            "recompute_dispatched",
            sent=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

