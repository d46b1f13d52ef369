"""Presence (Teams availability) models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .clock import utcnow


class Presence(str, Enum):
    """Availability reported by the collaboration platform."""

    AVAILABLE = "Available"
    AWAY = "Away"
    BUSY = "Busy"
    DO_NOT_DISTURB = "DoNotDisturb"
    IN_A_CALL = "InACall"
    IN_A_MEETING = "InAMeeting"
    OFFLINE = "Offline"
    UNKNOWN = "Unknown"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Presence.AVAILABLE: "Available",
    Presence.AWAY: "Away",
    Presence.BUSY: "Busy",
    Presence.DO_NOT_DISTURB: "Do Not Disturb",
    Presence.IN_A_CALL: "In a Call",
    Presence.IN_A_MEETING: "In a Meeting",
    Presence.OFFLINE: "Offline",
    Presence.UNKNOWN: "Unknown",
}


class PresenceState(BaseModel):
    """Immutable presence snapshot, replaced wholesale on each successful poll.

    Attributes:
        presence: Normalized availability
        activity: Free-text activity from upstream (e.g. "InACall")
        status_message: User status message, if any
        observed_at: When this snapshot was fetched
    """

    model_config = ConfigDict(frozen=True)

    presence: Presence = Field(..., description="Normalized availability")
    activity: Optional[str] = Field(default=None, description="Upstream activity")
    status_message: Optional[str] = Field(default=None, description="Status message")
    observed_at: datetime = Field(default_factory=utcnow, description="Observation time")
