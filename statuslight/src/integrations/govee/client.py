"""
Govee OpenAPI client.

API-key authenticated (``Govee-API-Key`` header). Every request goes
through the shared :class:`SlidingWindowRateLimiter` so the whole process
stays inside the account budget (10 requests / 60 s).
"""

from typing import List, Optional

import httpx
import structlog
from pydantic import ValidationError

from config.exceptions import (
    ConfigurationError,
    DeviceNotFoundError,
    InvalidResponseError,
    NetworkError,
    NotAuthenticatedError,
    RateLimitedError,
    StatusLightError,
)
from statuslight.src.core.rate_limiter import SlidingWindowRateLimiter
from statuslight.src.integrations.govee.models import (
    SUCCESS_CODE,
    ControlCapability,
    ControlRequest,
    ControlResponse,
    GoveeDevicesResponse,
)
from statuslight.src.models import Device, RGBColor

logger = structlog.get_logger(__name__)

GOVEE_BASE_URL = "https://openapi.api.govee.com"
DEVICES_PATH = "/router/api/v1/user/devices"
CONTROL_PATH = "/router/api/v1/device/control"
MIN_API_KEY_LENGTH = 10


def error_for_status(status_code: int, body: str = "") -> StatusLightError:
    """Map a non-200 Govee HTTP status onto the StatusLight error kinds."""
    detail = "Govee API HTTP %d: %s" % (status_code, body[:200])
    if status_code in (401, 403):
        return NotAuthenticatedError(detail)
    if status_code == 404:
        return DeviceNotFoundError(detail)
    if status_code == 429:
        return RateLimitedError(detail)
    if 500 <= status_code <= 599:
        return NetworkError(detail)
    return InvalidResponseError(detail)


class GoveeClient:
    """
    Client for the Govee cloud control API.

    Attributes:
        http_client: Shared ``httpx.AsyncClient`` (not owned)
        rate_limiter: Shared admission control
        api_key: Current API key, None until configured
        base_url: API base URL
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        rate_limiter: SlidingWindowRateLimiter,
        api_key: Optional[str] = None,
        base_url: str = GOVEE_BASE_URL,
        timeout: float = 10.0,
    ):
        self.http_client = http_client
        self.rate_limiter = rate_limiter
        self.api_key = api_key.strip() if api_key else None
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def set_api_key(self, api_key: Optional[str]) -> None:
        self.api_key = api_key.strip() if api_key else None

    def _require_key(self) -> str:
        if not self.api_key:
            raise NotAuthenticatedError("Govee API key not provided")
        if len(self.api_key) < MIN_API_KEY_LENGTH:
            raise ConfigurationError("Invalid Govee API key format")
        return self.api_key

    def _headers(self, api_key: str) -> dict:
        return {"Content-Type": "application/json", "Govee-API-Key": api_key}

    async def _request(self, method: str, path: str, api_key: str, **kwargs) -> httpx.Response:
        await self.rate_limiter.admit()
        try:
            return await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(api_key),
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.warning("govee_transport_error", path=path, error=str(e))
            raise NetworkError("Govee request failed: %s" % e) from e

    async def discover_devices(self) -> List[Device]:
        """List devices controllable with the current API key.

        Raises:
            NotAuthenticatedError: No key configured or key rejected
            InvalidResponseError: Body does not match the devices schema
        """
        api_key = self._require_key()
        response = await self._request("GET", DEVICES_PATH, api_key)

        if response.status_code != 200:
            raise error_for_status(response.status_code, response.text)

        try:
            parsed = GoveeDevicesResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponseError("Unexpected Govee devices payload: %s" % e) from e

        if parsed.code != SUCCESS_CODE:
            raise InvalidResponseError(
                "Govee devices request failed: code=%d %s" % (parsed.code, parsed.message)
            )

        devices = [d.model_copy(update={"is_connected": True}) for d in parsed.data]
        logger.info("govee_devices_discovered", count=len(devices))
        return devices

    async def control_device(self, device: Device, capability: ControlCapability) -> None:
        """Send one capability command to ``device``."""
        api_key = self._require_key()
        body = ControlRequest.for_device(device, capability)

        response = await self._request(
            "POST", CONTROL_PATH, api_key, json=body.model_dump(mode="json")
        )

        if response.status_code != 200:
            raise error_for_status(response.status_code, response.text)

        try:
            parsed = ControlResponse.model_validate_json(response.content or b"{}")
        except ValidationError as e:
            raise InvalidResponseError("Unexpected Govee control payload: %s" % e) from e

        if parsed.code != SUCCESS_CODE:
            if parsed.code == 429:
                raise RateLimitedError("Govee control rate limited: %s" % parsed.text)
            raise InvalidResponseError(
                "Govee control failed: code=%d %s" % (parsed.code, parsed.text)
            )

        logger.debug(
            "govee_command_sent",
            device_id=device.id,
            instance=capability.instance,
            value=capability.value,
        )

    async def set_color(self, device: Device, color: RGBColor) -> None:
        await self.control_device(device, ControlCapability.color(color.rgb_int))

    async def set_brightness(self, device: Device, level: int) -> None:
        await self.control_device(device, ControlCapability.brightness(level))

    async def set_power(self, device: Device, on: bool) -> None:
        await self.control_device(device, ControlCapability.power(on))

    async def validate_api_key(self, api_key: Optional[str] = None) -> bool:
        """Check whether an API key is accepted by Govee.

        200, 404 (no devices) and 429 (rate limited) count as valid;
        401/403 as invalid. Transport failures raise ``NetworkError``.
        """
        key = (api_key or self.api_key or "").strip()
        if not key:
            raise NotAuthenticatedError("Govee API key not provided")

        response = await self._request("GET", DEVICES_PATH, key)

        if response.status_code in (200, 404, 429):
            return True
        logger.warning("govee_api_key_rejected", status_code=response.status_code)
        return False
