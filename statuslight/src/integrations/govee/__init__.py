"""Govee cloud integration module."""

from .client import GOVEE_BASE_URL, GoveeClient, error_for_status
from .models import ControlCapability, ControlRequest, GoveeDevicesResponse

__all__ = [
    "GOVEE_BASE_URL",
    "GoveeClient",
    "error_for_status",
    "ControlCapability",
    "ControlRequest",
    "GoveeDevicesResponse",
]
