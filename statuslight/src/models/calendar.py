"""Calendar event models."""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .clock import utcnow


class BusyStatus(str, Enum):
    """Calendar "show as" classification."""

    FREE = "free"
    TENTATIVE = "tentative"
    BUSY = "busy"
    OOF = "oof"
    WORKING_ELSEWHERE = "workingElsewhere"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "BusyStatus":
        """Case-insensitive lookup, ``UNKNOWN`` for anything unrecognised."""
        if not raw:
            return cls.UNKNOWN
        lowered = raw.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls.UNKNOWN


class ResponseStatus(str, Enum):
    NONE = "none"
    ORGANIZER = "organizer"
    TENTATIVELY_ACCEPTED = "tentativelyAccepted"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    NOT_RESPONDED = "notResponded"


class MeetingType(str, Enum):
    """Coarse meeting classification by duration."""

    SHORT = "short_meeting"
    STANDARD = "standard_meeting"
    LONG = "long_meeting"
    ALL_DAY = "all_day"

    @classmethod
    def classify(cls, duration: timedelta, is_all_day: bool) -> "MeetingType":
        if is_all_day:
            return cls.ALL_DAY
        if duration < timedelta(minutes=30):
            return cls.SHORT
        if duration <= timedelta(minutes=60):
            return cls.STANDARD
        return cls.LONG


class CountdownStage(str, Enum):
    """Discrete buckets used by the legacy countdown coloring."""

    FIFTEEN_MINUTES = "fifteen_minutes"
    FIVE_MINUTES = "five_minutes"
    ONE_MINUTE = "one_minute"
    ACTIVE = "active"

    @property
    def minutes(self) -> int:
        return _STAGE_MINUTES[self]


_STAGE_MINUTES = {
    CountdownStage.FIFTEEN_MINUTES: 15,
    CountdownStage.FIVE_MINUTES: 5,
    CountdownStage.ONE_MINUTE: 1,
    CountdownStage.ACTIVE: 0,
}


class Attendee(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: str = ""
    response_status: ResponseStatus = ResponseStatus.NONE


class CalendarEvent(BaseModel):
    """Immutable calendar event.

    Time-dependent properties take an optional ``now`` so callers (and
    tests) can evaluate a whole snapshot against a single instant.

    Attributes:
        id: Upstream event ID
        subject: Event title
        start: Start instant (timezone-aware)
        end: End instant (timezone-aware)
        is_all_day: All-day flag
        show_as: Busy-status classification
        is_recurring: Part of a recurring series
        attendees: Attendee list
        location: Display location
        web_link: Link to the event in the calendar web UI
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Event ID")
    subject: str = Field(default="", description="Event title")
    start: datetime = Field(..., description="Start (tz-aware)")
    end: datetime = Field(..., description="End (tz-aware)")
    is_all_day: bool = False
    show_as: BusyStatus = BusyStatus.UNKNOWN
    is_recurring: bool = False
    attendees: List[Attendee] = Field(default_factory=list)
    location: Optional[str] = None
    web_link: Optional[str] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def meeting_type(self) -> MeetingType:
        return MeetingType.classify(self.duration, self.is_all_day)

    def is_currently_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.start <= now <= self.end

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.start > now

    def minutes_until_start(self, now: Optional[datetime] = None) -> float:
        """Fractional minutes until start, never negative."""
        now = now or utcnow()
        return max(0.0, (self.start - now).total_seconds() / 60.0)
