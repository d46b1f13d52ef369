"""
Command dispatcher - fans target colors out to devices.

One task per device whose target differs from the last color sent. Each
task goes through the shared rate limiter (inside the device client), so
N devices never exceed the account budget together. Outcomes are strictly
per device: a failure never cancels or fails a sibling.
"""

import asyncio
from typing import Dict, List, Optional, Protocol

import structlog
from pydantic import BaseModel, ConfigDict

from config.exceptions import StatusLightError
from statuslight.src.core.device_registry import DeviceRegistry
from statuslight.src.models import Device, RGBColor

logger = structlog.get_logger(__name__)


class ColorSink(Protocol):
    """Anything that can set a device color (the Govee client in production)."""

    async def set_color(self, device: Device, color: RGBColor) -> None: ...


class DispatchResult(BaseModel):
    """Outcome of one device command.

    Attributes:
        device_id: Target device
        color: Color that was (or would have been) sent
        success: Command accepted upstream
        error: Error message on failure
        error_type: Error class name on failure
    """

    model_config = ConfigDict(frozen=True)

    device_id: str
    color: RGBColor
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


class CommandDispatcher:
    """Concurrent, per-device color dispatch with change detection."""

    def __init__(self, registry: DeviceRegistry, sink: ColorSink):
        self.registry = registry
        self.sink = sink
        # Colors currently being sent, so overlapping recomputes do not duplicate
        self._in_flight: Dict[str, RGBColor] = {}

    def pending(self, targets: Dict[str, RGBColor]) -> Dict[str, RGBColor]:
        """Targets for active devices whose color actually changed."""
        active_ids = {d.id for d in self.registry.active_devices()}
        return {
            device_id: color
            for device_id, color in targets.items()
            if device_id in active_ids
            and self.registry.last_sent_color(device_id) != color
            and self._in_flight.get(device_id) != color
        }

    async def dispatch(self, targets: Dict[str, RGBColor]) -> List[DispatchResult]:
        """Send every changed target concurrently.

        Args:
            targets: device id -> target color

        Returns:
            One result per device actually commanded (unchanged devices are
            skipped and produce no result)
        """
        pending = self.pending(targets)
        if not pending:
            return []

        logger.info("dispatching_colors", devices=len(pending))
        # Claimed before the first await so a concurrent dispatch skips them
        self._in_flight.update(pending)
        return list(
            await asyncio.gather(
                *(self._send(device_id, color) for device_id, color in pending.items())
            )
        )

    async def send_one(self, device_id: str, color: RGBColor) -> DispatchResult:
        """Unconditionally send ``color`` to one device (test color, manual refresh)."""
        return await self._send(device_id, color)

    async def _send(self, device_id: str, color: RGBColor) -> DispatchResult:
        self._in_flight[device_id] = color
        try:
            return await self._command(self.registry.get(device_id), color)
        finally:
            if self._in_flight.get(device_id) == color:
                del self._in_flight[device_id]

    async def _command(self, device: Device, color: RGBColor) -> DispatchResult:
        device_id = device.id
        try:
            await self.sink.set_color(device, color)
        except StatusLightError as e:
            self.registry.mark_result(device_id, success=False)
            logger.warning(
                "device_command_failed",
                device_id=device_id,
                device_name=device.device_name,
                color=str(color),
                error=str(e),
                error_type=type(e).__name__,
            )
            return DispatchResult(
                device_id=device_id,
                color=color,
                success=False,
                error="Failed to update %s: %s" % (device.device_name or device_id, e),
                error_type=type(e).__name__,
            )
        except Exception as e:
            self.registry.mark_result(device_id, success=False)
            logger.error(
                "device_command_unexpected_error",
                device_id=device_id,
                error=str(e),
                exc_info=True,
            )
            return DispatchResult(
                device_id=device_id,
                color=color,
                success=False,
                error="Failed to update %s: %s" % (device.device_name or device_id, e),
                error_type=type(e).__name__,
            )

        self.registry.mark_result(device_id, success=True, color=color)
        logger.info(
            "device_color_updated",
            device_id=device_id,
            device_name=device.device_name,
            color=str(color),
        )
        return DispatchResult(device_id=device_id, color=color, success=True)
