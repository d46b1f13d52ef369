"""Microsoft Graph wire models and conversion to domain models."""

import re
from datetime import datetime, timezone, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import BaseModel, ConfigDict, Field

from statuslight.src.models import (
    Attendee,
    BusyStatus,
    CalendarEvent,
    Presence,
    PresenceState,
    ResponseStatus,
    utcnow,
)

logger = structlog.get_logger(__name__)

# Graph sends 7 fractional digits, more than datetime can parse
_FRACTION_RE = re.compile(r"\.(\d+)")


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Time zone for a Graph ``timeZone`` name, UTC when unknown."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_graph_timezone", timezone=name)
        return timezone.utc


def parse_graph_datetime(value: str, tz_name: Optional[str]) -> datetime:
    """Parse a Graph ``dateTimeTimeZone`` pair into an aware datetime.

    Raises:
        ValueError: If ``value`` is not an ISO-8601 local date-time
    """
    raw = value.strip().rstrip("Z")
    match = _FRACTION_RE.search(raw)
    if match:
        micros = (match.group(1) + "000000")[:6]
        raw = raw[: match.start()] + "." + micros + raw[match.end():]

    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=resolve_timezone(tz_name))
    return parsed


def format_graph_datetime(value: datetime) -> str:
    """Format an instant as Graph ``calendarView`` query parameter (UTC)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.0000000Z")


# ----------------------------------------------------------------------
# Presence
# ----------------------------------------------------------------------


class GraphStatusMessageBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: Optional[str] = None


class GraphStatusMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: Optional[GraphStatusMessageBody] = None


class GraphPresenceResponse(BaseModel):
    """``GET /me/presence`` body."""

    model_config = ConfigDict(extra="ignore")

    availability: str
    activity: str = ""
    statusMessage: Optional[GraphStatusMessage] = None

    @property
    def presence(self) -> Presence:
        availability = self.availability.lower()
        activity = self.activity.lower()

        if availability in ("available", "availableidle"):
            return Presence.AVAILABLE
        if availability in ("away", "berightback"):
            return Presence.AWAY
        if availability == "offline":
            return Presence.OFFLINE
        if availability in ("busy", "busyidle"):
            if "call" in activity:
                return Presence.IN_A_CALL
            if "meeting" in activity or "presenting" in activity:
                return Presence.IN_A_MEETING
            return Presence.BUSY
        if availability == "donotdisturb":
            return Presence.DO_NOT_DISTURB
        return Presence.UNKNOWN

    def to_presence_state(self, observed_at: Optional[datetime] = None) -> PresenceState:
        status_message = None
        if self.statusMessage and self.statusMessage.message:
            status_message = self.statusMessage.message.content
        return PresenceState(
            presence=self.presence,
            activity=self.activity or None,
            status_message=status_message,
            observed_at=observed_at or utcnow(),
        )


# ----------------------------------------------------------------------
# Calendar
# ----------------------------------------------------------------------


class GraphDateTime(BaseModel):
    dateTime: str
    timeZone: str = "UTC"

    def to_datetime(self) -> datetime:
        return parse_graph_datetime(self.dateTime, self.timeZone)


class GraphEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    address: str = ""


class GraphResponseStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    response: str = "none"


class GraphAttendee(BaseModel):
    model_config = ConfigDict(extra="ignore")

    emailAddress: Optional[GraphEmailAddress] = None
    status: Optional[GraphResponseStatus] = None

    def to_attendee(self) -> Attendee:
        raw_status = self.status.response if self.status else "none"
        try:
            response_status = ResponseStatus(raw_status)
        except ValueError:
            response_status = ResponseStatus.NONE
        return Attendee(
            name=self.emailAddress.name if self.emailAddress else None,
            email=self.emailAddress.address if self.emailAddress else "",
            response_status=response_status,
        )


class GraphLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    displayName: Optional[str] = None


class GraphEvent(BaseModel):
    """One ``calendarView`` entry."""

    model_config = ConfigDict(extra="ignore")

    id: str
    subject: Optional[str] = None
    start: GraphDateTime
    end: GraphDateTime
    isAllDay: bool = False
    showAs: str = "unknown"
    recurrence: Optional[dict] = None
    seriesMasterId: Optional[str] = None
    type: Optional[str] = None
    attendees: List[GraphAttendee] = Field(default_factory=list)
    location: Optional[GraphLocation] = None
    webLink: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return (
            self.recurrence is not None
            or self.seriesMasterId is not None
            or self.type in ("occurrence", "exception", "seriesMaster")
        )

    def to_calendar_event(self) -> CalendarEvent:
        start = self.start.to_datetime()
        end = self.end.to_datetime()
        if end < start:
            end = start
        return CalendarEvent(
            id=self.id,
            subject=self.subject or "",
            start=start,
            end=end,
            is_all_day=self.isAllDay,
            show_as=BusyStatus.parse(self.showAs),
            is_recurring=self.is_recurring,
            attendees=[a.to_attendee() for a in self.attendees],
            location=self.location.displayName if self.location else None,
            web_link=self.webLink,
        )


class GraphCalendarResponse(BaseModel):
    """``GET /me/calendar/calendarView`` body."""

    model_config = ConfigDict(extra="ignore")

    value: List[GraphEvent] = Field(default_factory=list)
    next_link: Optional[str] = Field(default=None, alias="@odata.nextLink")


# ----------------------------------------------------------------------
# OAuth token endpoint
# ----------------------------------------------------------------------


class TokenResponse(BaseModel):
    """OAuth2 token endpoint body (authorization-code or refresh grant)."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = Field(..., ge=0)
    token_type: str = "Bearer"
    scope: Optional[str] = None
