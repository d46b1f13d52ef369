"""Static StatusLight configuration loaded from YAML."""

from pathlib import Path
from typing import Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator

from statuslight.src.core.meeting_tracker import MeetingTrackerConfig
from statuslight.src.models import (
    ColorMapping,
    CountdownStage,
    DeviceAssignment,
    MeetingType,
    Presence,
    RGBColor,
)


def _validate_hex_colors(v: Dict[str, str], allowed: set, section: str) -> Dict[str, str]:
    for key, color in v.items():
        if key not in allowed:
            raise ValueError(f"{section}: unknown key '{key}', expected one of {sorted(allowed)}")
        if not color.startswith("#") or len(color) != 7:
            raise ValueError(f"color must be hex format #RRGGBB, got '{color}'")
    return v


class ColorMappingSettings(BaseModel):
    """Color overrides (hex ``#RRGGBB``), merged over the built-in palette.

    Attributes:
        presence: Presence value -> color
        countdown: Countdown stage -> color
        meeting_type: Meeting type -> color
    """

    presence: Dict[str, str] = Field(default_factory=dict, description="Presence colors")
    countdown: Dict[str, str] = Field(default_factory=dict, description="Countdown colors")
    meeting_type: Dict[str, str] = Field(default_factory=dict, description="Meeting type colors")

    @field_validator("presence")
    @classmethod
    def validate_presence(cls, v: Dict[str, str]) -> Dict[str, str]:
        return _validate_hex_colors(v, {p.value for p in Presence}, "presence")

    @field_validator("countdown")
    @classmethod
    def validate_countdown(cls, v: Dict[str, str]) -> Dict[str, str]:
        return _validate_hex_colors(v, {s.value for s in CountdownStage}, "countdown")

    @field_validator("meeting_type")
    @classmethod
    def validate_meeting_type(cls, v: Dict[str, str]) -> Dict[str, str]:
        return _validate_hex_colors(v, {t.value for t in MeetingType}, "meeting_type")

    def to_color_mapping(self) -> ColorMapping:
        mapping = ColorMapping.default()
        return ColorMapping(
            presence_colors={
                **mapping.presence_colors,
                **{k: RGBColor.from_hex(c) for k, c in self.presence.items()},
            },
            countdown_colors={
                **mapping.countdown_colors,
                **{k: RGBColor.from_hex(c) for k, c in self.countdown.items()},
            },
            meeting_type_colors={
                **mapping.meeting_type_colors,
                **{k: RGBColor.from_hex(c) for k, c in self.meeting_type.items()},
            },
        )


class MeetingTrackerSettings(BaseModel):
    """Meeting tracker section.

    Attributes:
        enabled: Enable the countdown ramp
        countdown_minutes: Window length in minutes
        idle_color: Hex color far from any meeting
        meeting_color: Hex color at meeting start
        devices: Device ids opted in to the tracker
    """

    enabled: bool = Field(default=False, description="Enable meeting tracker")
    countdown_minutes: int = Field(default=15, ge=1, le=240, description="Countdown window")
    idle_color: str = Field(default="#00FF00", description="Idle color (hex)")
    meeting_color: str = Field(default="#FF0000", description="Meeting color (hex)")
    devices: List[str] = Field(default_factory=list, description="Opted-in device ids")

    @field_validator("idle_color", "meeting_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        """Validate color is a valid hex code."""
        if not v.startswith("#") or len(v) != 7:
            raise ValueError(f"color must be hex format #RRGGBB, got '{v}'")
        return v

    @field_validator("devices", mode="before")
    @classmethod
    def stringify_devices(cls, v):
        return [str(d) for d in (v or [])]

    def to_tracker_config(self) -> MeetingTrackerConfig:
        return MeetingTrackerConfig(
            enabled=self.enabled,
            countdown_minutes=self.countdown_minutes,
            idle_color=RGBColor.from_hex(self.idle_color),
            meeting_color=RGBColor.from_hex(self.meeting_color),
            assigned_device_ids=set(self.devices),
        )


class StatusLightConfig(BaseModel):
    """Root YAML configuration.

    Attributes:
        color_mapping: Palette overrides
        meeting_tracker: Meeting tracker defaults
        device_assignments: Device id -> assignment
    """

    color_mapping: ColorMappingSettings = Field(default_factory=ColorMappingSettings)
    meeting_tracker: MeetingTrackerSettings = Field(default_factory=MeetingTrackerSettings)
    device_assignments: Dict[str, DeviceAssignment] = Field(default_factory=dict)

    @field_validator("device_assignments", mode="before")
    @classmethod
    def stringify_device_ids(cls, v):
        return {str(k): val for k, val in (v or {}).items()}

    @classmethod
    def from_yaml(cls, path: str) -> "StatusLightConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to statuslight.yaml

        Returns:
            StatusLightConfig instance with validated settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        yaml_path = Path(path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"StatusLight config file not found: {path}")

        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not data:
            raise ValueError(f"Empty or invalid YAML file: {path}")

        return cls(**data)
