"""Govee OpenAPI wire models."""

import uuid
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from statuslight.src.models import Device
from statuslight.src.models.device import (
    COLOR_SETTING_CAPABILITY,
    ON_OFF_CAPABILITY,
    RANGE_CAPABILITY,
)

SUCCESS_CODE = 200


class GoveeDevicesResponse(BaseModel):
    """``GET /router/api/v1/user/devices`` body.

    Attributes:
        code: Application status code (200 on success)
        message: Upstream message
        data: Device list
    """

    model_config = ConfigDict(extra="ignore")

    code: int = Field(..., description="Application status code")
    message: str = Field(default="", description="Upstream message")
    data: List[Device] = Field(default_factory=list, description="Devices")


class ControlCapability(BaseModel):
    """Capability instance + value sent to a device."""

    type: str
    instance: str
    value: Any

    @classmethod
    def color(cls, rgb_int: int) -> "ControlCapability":
        return cls(type=COLOR_SETTING_CAPABILITY, instance="colorRgb", value=rgb_int)

    @classmethod
    def brightness(cls, level: int) -> "ControlCapability":
        return cls(
            type=RANGE_CAPABILITY,
            instance="brightness",
            value=max(1, min(100, int(level))),
        )

    @classmethod
    def power(cls, on: bool) -> "ControlCapability":
        return cls(type=ON_OFF_CAPABILITY, instance="powerSwitch", value=1 if on else 0)


class ControlPayload(BaseModel):
    sku: str
    device: str
    capability: ControlCapability


class ControlRequest(BaseModel):
    """``POST /router/api/v1/device/control`` body."""

    requestId: str = Field(default_factory=lambda: str(uuid.uuid4()))
    payload: ControlPayload

    @classmethod
    def for_device(cls, device: Device, capability: ControlCapability) -> "ControlRequest":
        return cls(payload=ControlPayload(sku=device.sku, device=device.id, capability=capability))


class ControlResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    requestId: Optional[str] = None
    code: int = SUCCESS_CODE
    msg: Optional[str] = None
    message: Optional[str] = None

    @property
    def text(self) -> str:
        return self.msg or self.message or ""
