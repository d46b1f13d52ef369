"""
Meeting countdown engine.

Turns the calendar snapshot into a progress value in [0, 1] that ramps
from idle to meeting color over the configured countdown window.
"""

import math
from datetime import datetime
from typing import List, Optional, Set

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from statuslight.src.models import CalendarEvent, RGBColor, utcnow

logger = structlog.get_logger(__name__)

MIN_COUNTDOWN_MINUTES = 1
MAX_COUNTDOWN_MINUTES = 240


class MeetingTrackerConfig(BaseModel):
    """Meeting tracker configuration.

    Attributes:
        enabled: Tracker globally enabled
        countdown_minutes: Length of the countdown window
        idle_color: Color far from any meeting
        meeting_color: Color at meeting start
        assigned_device_ids: Devices opted in to the tracker
    """

    enabled: bool = Field(default=False, description="Enable meeting tracker")
    countdown_minutes: int = Field(
        default=15,
        ge=MIN_COUNTDOWN_MINUTES,
        le=MAX_COUNTDOWN_MINUTES,
        description="Countdown window in minutes",
    )
    idle_color: RGBColor = Field(default_factory=lambda: RGBColor(r=0, g=255, b=0))
    meeting_color: RGBColor = Field(default_factory=lambda: RGBColor(r=255, g=0, b=0))
    assigned_device_ids: Set[str] = Field(default_factory=set)

    @field_validator("assigned_device_ids", mode="before")
    @classmethod
    def normalize_ids(cls, v):
        """Device identifiers are always strings."""
        return {str(item) for item in (v or [])}


class MeetingTrackerState(BaseModel):
    """Derived tracker output, recomputed on each tick.

    Attributes:
        next_event: Earliest upcoming event, if any
        minutes_remaining: Fractional minutes until ``next_event`` starts
        progress: 0.0 (idle) to 1.0 (meeting starting)
        active: Next event is inside the countdown window
    """

    model_config = ConfigDict(frozen=True)

    next_event: Optional[CalendarEvent] = None
    minutes_remaining: float = 0.0
    progress: float = 0.0
    active: bool = False

    @classmethod
    def idle(cls) -> "MeetingTrackerState":
        return cls()


class MeetingCountdownEngine:
    """Stateful wrapper around the countdown math.

    Holds the current config and event snapshot; ``recalculate()`` derives
    a fresh :class:`MeetingTrackerState` from them for a given instant.
    """

    def __init__(self, config: Optional[MeetingTrackerConfig] = None):
        self.config = config or MeetingTrackerConfig()
        self._events: List[CalendarEvent] = []
        self.state = MeetingTrackerState.idle()

    def update_config(self, config: MeetingTrackerConfig) -> MeetingTrackerState:
        self.config = config
        logger.info(
            "meeting_tracker_config_updated",
            enabled=config.enabled,
            countdown_minutes=config.countdown_minutes,
            devices=len(config.assigned_device_ids),
        )
        return self.recalculate()

    def update_events(self, events: List[CalendarEvent]) -> MeetingTrackerState:
        self._events = list(events)
        return self.recalculate()

    def recalculate(self, now: Optional[datetime] = None) -> MeetingTrackerState:
        """Recompute tracker state from the current event snapshot."""
        self.state = compute_tracker_state(self._events, self.config, now or utcnow())
        return self.state

    def single_device_color(self, device_id: Optional[str] = None) -> RGBColor:
        """Blended color for a single-zone device.

        Args:
            device_id: When given, devices not opted in get the idle color
        """
        if device_id is not None and device_id not in self.config.assigned_device_ids:
            return self.config.idle_color
        return blended_color(self.config, self.state)

    def strip_colors(self, zone_count: int, device_id: Optional[str] = None) -> List[RGBColor]:
        """Zone colors for a segmented strip, left to right."""
        if device_id is not None and device_id not in self.config.assigned_device_ids:
            return [self.config.idle_color] * max(0, zone_count)
        return strip_colors(self.config, self.state, zone_count)


def next_upcoming_event(
    events: List[CalendarEvent], now: datetime
) -> Optional[CalendarEvent]:
    """Earliest event starting strictly after ``now``, regardless of busy status."""
    upcoming = sorted((e for e in events if e.is_upcoming(now)), key=lambda e: e.start)
    return upcoming[0] if upcoming else None


def compute_tracker_state(
    events: List[CalendarEvent],
    config: MeetingTrackerConfig,
    now: datetime,
) -> MeetingTrackerState:
    """Pure countdown computation.

    ``active`` iff the next event is upcoming and starts within the window.
    Progress is ``1 - remaining / window`` clamped into [0, 1], and 0.0
    whenever the tracker is inactive.
    """
    event = next_upcoming_event(events, now)
    if event is None:
        return MeetingTrackerState.idle()

    remaining = event.minutes_until_start(now)
    window = float(config.countdown_minutes)
    active = remaining <= window
    progress = max(0.0, min(1.0, 1.0 - remaining / window)) if active else 0.0

    return MeetingTrackerState(
        next_event=event,
        minutes_remaining=remaining,
        progress=progress,
        active=active,
    )


def blended_color(config: MeetingTrackerConfig, state: MeetingTrackerState) -> RGBColor:
    """Per-channel linear interpolation between idle and meeting color."""
    if not config.enabled or not state.active:
        return config.idle_color
    return config.idle_color.blend(config.meeting_color, state.progress)


def strip_colors(
    config: MeetingTrackerConfig, state: MeetingTrackerState, zone_count: int
) -> List[RGBColor]:
    """``floor(N * p)`` meeting zones on the right, idle zones on the left."""
    if zone_count <= 0:
        return []
    if not config.enabled or not state.active:
        return [config.idle_color] * zone_count

    meeting_zones = min(zone_count, int(math.floor(zone_count * state.progress)))
    idle_zones = zone_count - meeting_zones
    return [config.idle_color] * idle_zones + [config.meeting_color] * meeting_zones
