"""Controllable device models."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .clock import utcnow

COLOR_SETTING_CAPABILITY = "devices.capabilities.color_setting"
RANGE_CAPABILITY = "devices.capabilities.range"
ON_OFF_CAPABILITY = "devices.capabilities.on_off"


class DeviceAssignment(str, Enum):
    """Which signal(s) drive a device's color."""

    TEAMS_STATUS = "teams_status"
    MEETING_TRACKER = "meeting_tracker"
    BOTH = "both"

    @property
    def display_name(self) -> str:
        return {
            DeviceAssignment.TEAMS_STATUS: "Teams Status Only",
            DeviceAssignment.MEETING_TRACKER: "Meeting Tracker Only",
            DeviceAssignment.BOTH: "Both Features",
        }[self]

    @property
    def uses_tracker(self) -> bool:
        return self in (DeviceAssignment.MEETING_TRACKER, DeviceAssignment.BOTH)

    @property
    def uses_presence(self) -> bool:
        return self in (DeviceAssignment.TEAMS_STATUS, DeviceAssignment.BOTH)


class DeviceCapability(BaseModel):
    """Capability tag; extra upstream fields (``parameters``) are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str
    instance: str


class Device(BaseModel):
    """Controllable color-capable device.

    Created by discovery and updated in place as commands succeed or fail.

    Attributes:
        id: Stable device identifier (upstream ``device`` field)
        sku: Model / SKU
        device_name: Display name
        device_type: Upstream device type (absent for groups)
        capabilities: Capability tags
        is_connected: Locally tracked reachability
        last_updated: Last successful discovery or command
        is_active: User on/off toggle, inactive devices are never commanded
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="device", description="Device identifier")
    sku: str = Field(..., description="Model / SKU")
    device_name: str = Field(default="", alias="deviceName", description="Display name")
    device_type: Optional[str] = Field(default=None, alias="type", description="Device type")
    capabilities: List[DeviceCapability] = Field(default_factory=list)
    is_connected: bool = False
    last_updated: datetime = Field(default_factory=utcnow)
    is_active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def normalize_device_id(cls, v: Any) -> str:
        """Upstream sends the identifier as either a string or an integer."""
        if isinstance(v, bool):
            raise ValueError("device field must be String or Int")
        if isinstance(v, int):
            return str(v)
        if isinstance(v, str):
            return v
        raise ValueError("device field must be String or Int")

    @property
    def supports_color(self) -> bool:
        return any("color_setting" in c.type for c in self.capabilities)
