"""Domain models shared by the engine and the integrations."""

from .calendar import (
    Attendee,
    BusyStatus,
    CalendarEvent,
    CountdownStage,
    MeetingType,
    ResponseStatus,
)
from .clock import utcnow
from .color import RGBColor
from .color_mapping import ColorMapping
from .connection import ConnectionState, ConnectionStatus
from .device import Device, DeviceAssignment, DeviceCapability
from .presence import Presence, PresenceState

__all__ = [
    "Attendee",
    "BusyStatus",
    "CalendarEvent",
    "ColorMapping",
    "ConnectionState",
    "ConnectionStatus",
    "CountdownStage",
    "Device",
    "DeviceAssignment",
    "DeviceCapability",
    "MeetingType",
    "Presence",
    "PresenceState",
    "RGBColor",
    "ResponseStatus",
    "utcnow",
]
