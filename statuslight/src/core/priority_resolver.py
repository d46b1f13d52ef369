"""
Priority resolver - picks exactly one target color per device.

Precedence:
1. Tracker-driven device (``meeting_tracker``, or ``both`` while the
   tracker state is active) -> countdown-blended color, idle when disabled
2. Presence observed -> presence color, overlaid by the coarse countdown
   stage of the next busy event (active > 1 min > 5 min > 15 min)
3. Nothing observed -> fallback color for ``Unknown``

Everything here is pure: same inputs, same color, no I/O, no exceptions.
"""

from datetime import datetime
from typing import Iterable, Optional

from statuslight.src.core.meeting_tracker import (
    MeetingTrackerConfig,
    MeetingTrackerState,
    blended_color,
)
from statuslight.src.models import (
    BusyStatus,
    CalendarEvent,
    ColorMapping,
    CountdownStage,
    DeviceAssignment,
    Presence,
    PresenceState,
    RGBColor,
)

# Stage thresholds, most specific first
_STAGE_THRESHOLDS = (
    (CountdownStage.ONE_MINUTE, 1.0),
    (CountdownStage.FIVE_MINUTES, 5.0),
    (CountdownStage.FIFTEEN_MINUTES, 15.0),
)


def next_busy_event(
    events: Iterable[CalendarEvent], now: datetime
) -> Optional[CalendarEvent]:
    """Earliest busy event that is in progress or still to come."""
    candidates = [
        e
        for e in events
        if e.show_as == BusyStatus.BUSY and (e.is_upcoming(now) or e.is_currently_active(now))
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda e: e.start)


def countdown_stage_for(event: Optional[CalendarEvent], now: datetime) -> Optional[CountdownStage]:
    """Coarse countdown bucket for ``event`` at ``now``, None beyond 15 minutes."""
    if event is None:
        return None
    if event.is_currently_active(now):
        return CountdownStage.ACTIVE
    if not event.is_upcoming(now):
        return None

    minutes = event.minutes_until_start(now)
    for stage, threshold in _STAGE_THRESHOLDS:
        if minutes <= threshold:
            return stage
    return None


def resolve_target_color(
    assignment: DeviceAssignment,
    *,
    presence: Optional[PresenceState],
    events: Iterable[CalendarEvent],
    tracker_state: MeetingTrackerState,
    tracker_config: MeetingTrackerConfig,
    mapping: ColorMapping,
    now: datetime,
) -> RGBColor:
    """Compute the color a device should show right now.

    Args:
        assignment: Effective assignment of the device
        presence: Latest presence snapshot, None if never observed
        events: Latest calendar snapshot
        tracker_state: Current meeting tracker state
        tracker_config: Meeting tracker configuration
        mapping: Active color mapping
        now: Evaluation instant

    Returns:
        Target color (never raises)
    """
    if assignment == DeviceAssignment.MEETING_TRACKER:
        return blended_color(tracker_config, tracker_state)

    if assignment == DeviceAssignment.BOTH and tracker_state.active:
        return blended_color(tracker_config, tracker_state)

    if presence is None:
        return mapping.color_for_presence(Presence.UNKNOWN)

    stage = countdown_stage_for(next_busy_event(events, now), now)
    if stage is not None:
        return mapping.color_for_countdown(stage)

    return mapping.color_for_presence(presence.presence)
