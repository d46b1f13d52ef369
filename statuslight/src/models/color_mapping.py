"""Color mapping from signals to RGB."""

from typing import Dict

from pydantic import BaseModel, Field

from .calendar import CountdownStage, MeetingType
from .color import WHITE, RGBColor
from .presence import Presence


def _default_presence_colors() -> Dict[str, RGBColor]:
    return {
        Presence.AVAILABLE.value: RGBColor(r=0, g=255, b=0),
        Presence.AWAY.value: RGBColor(r=255, g=255, b=0),
        Presence.BUSY.value: RGBColor(r=255, g=0, b=0),
        Presence.DO_NOT_DISTURB.value: RGBColor(r=128, g=0, b=128),
        Presence.IN_A_CALL.value: RGBColor(r=0, g=100, b=255),
        Presence.IN_A_MEETING.value: RGBColor(r=255, g=165, b=0),
        Presence.OFFLINE.value: RGBColor(r=128, g=128, b=128),
        Presence.UNKNOWN.value: RGBColor(r=255, g=255, b=255),
    }


def _default_countdown_colors() -> Dict[str, RGBColor]:
    return {
        CountdownStage.FIFTEEN_MINUTES.value: RGBColor(r=255, g=255, b=0),
        CountdownStage.FIVE_MINUTES.value: RGBColor(r=255, g=165, b=0),
        CountdownStage.ONE_MINUTE.value: RGBColor(r=255, g=0, b=0),
        CountdownStage.ACTIVE.value: RGBColor(r=128, g=0, b=128),
    }


def _default_meeting_type_colors() -> Dict[str, RGBColor]:
    return {
        MeetingType.SHORT.value: RGBColor(r=0, g=255, b=255),
        MeetingType.STANDARD.value: RGBColor(r=0, g=100, b=255),
        MeetingType.LONG.value: RGBColor(r=128, g=0, b=255),
        MeetingType.ALL_DAY.value: RGBColor(r=255, g=20, b=147),
    }


class ColorMapping(BaseModel):
    """Total mapping from presence / countdown stage / meeting type to color.

    Keys are the enum values so the mapping round-trips through JSON and
    YAML unchanged. Lookups never fail: a missing key falls back to white.

    Attributes:
        presence_colors: Presence value -> color
        countdown_colors: CountdownStage value -> color
        meeting_type_colors: MeetingType value -> color
    """

    presence_colors: Dict[str, RGBColor] = Field(default_factory=_default_presence_colors)
    countdown_colors: Dict[str, RGBColor] = Field(default_factory=_default_countdown_colors)
    meeting_type_colors: Dict[str, RGBColor] = Field(
        default_factory=_default_meeting_type_colors
    )

    @classmethod
    def default(cls) -> "ColorMapping":
        return cls()

    def color_for_presence(self, presence: Presence) -> RGBColor:
        return self.presence_colors.get(presence.value, WHITE)

    def color_for_countdown(self, stage: CountdownStage) -> RGBColor:
        return self.countdown_colors.get(stage.value, WHITE)

    def color_for_meeting_type(self, meeting_type: MeetingType) -> RGBColor:
        return self.meeting_type_colors.get(meeting_type.value, WHITE)
