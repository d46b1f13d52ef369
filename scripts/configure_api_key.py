#!/usr/bin/env python3
"""
Manage the Govee API key used by StatusLight.

Usage:
    python scripts/configure_api_key.py store <API_KEY>
    python scripts/configure_api_key.py validate <API_KEY>
    python scripts/configure_api_key.py test <DEVICE_ID> --color "#FF8800"
    python scripts/configure_api_key.py remove

Commands:
    - store: validate the key against the Govee API, then save it in the secret store
    - validate: check the key without saving anything
    - test: send a color to one device using the stored key
    - remove: delete the stored key
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import httpx
import structlog

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.exceptions import StatusLightError
from config.logging import configure_logging
from services.statuslight.main import build_engine, load_app_config
from statuslight.src.adapters.secret_store import get_secret_store
from statuslight.src.config.settings import StatusLightSettings, get_settings
from statuslight.src.core.engine import StatusLightEngine
from statuslight.src.models import RGBColor

logger = structlog.get_logger(service="configure-api-key")


async def _with_engine(settings: StatusLightSettings, action) -> int:
    async with httpx.AsyncClient(timeout=httpx.Timeout(15.0)) as http_client:
        store = get_secret_store(
            settings.secret_store_path,
            sops_enabled=settings.secret_store_sops_enabled,
        )
        engine = build_engine(settings, http_client, store, load_app_config(settings))
        return await action(engine)


async def store_key(engine: StatusLightEngine, api_key: str) -> int:
    devices = await engine.configure_govee_api_key(api_key)
    print("API key stored. %d device(s) found:" % len(devices))
    for device in devices:
        print("  %s  %s (%s)" % (device.id, device.device_name, device.sku))
    return 0


async def validate_key(engine: StatusLightEngine, api_key: str) -> int:
    if await engine.govee_client.validate_api_key(api_key.strip()):
        print("API key is valid.")
        return 0
    print("API key was rejected by Govee.")
    return 1


async def test_device(engine: StatusLightEngine, device_id: str, color: RGBColor) -> int:
    await engine.load_persisted_state()
    if not engine.govee_client.is_configured:
        print("No Govee API key stored. Run 'store' first.")
        return 1

    devices = await engine.registry.replace_devices(await engine.govee_client.discover_devices())
    engine.devices.set(devices)
    result = await engine.test_color(device_id, color)
    if result.success:
        print("Sent %s to %s." % (color.hex, device_id))
        return 0
    print(result.error)
    return 1


async def remove_key(engine: StatusLightEngine) -> int:
    await engine.remove_govee_api_key()
    print("API key removed.")
    return 0


async def main(command: str, api_key: Optional[str], device_id: Optional[str], color: str) -> int:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=False)

    try:
        if command == "store":
            return await _with_engine(settings, lambda e: store_key(e, api_key))
        if command == "validate":
            return await _with_engine(settings, lambda e: validate_key(e, api_key))
        if command == "test":
            return await _with_engine(
                settings, lambda e: test_device(e, device_id, RGBColor.from_hex(color))
            )
        return await _with_engine(settings, remove_key)
    except StatusLightError as e:
        logger.error("configure_api_key_failed", error=str(e), error_type=type(e).__name__)
        return 1
    except Exception as e:
        logger.error("configure_api_key_unexpected_error", error=str(e), error_type=type(e).__name__)
        return 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Manage the StatusLight Govee API key")
    subparsers = parser.add_subparsers(dest="command", required=True)

    store_parser = subparsers.add_parser("store", help="Validate and store the API key")
    store_parser.add_argument("api_key")

    validate_parser = subparsers.add_parser("validate", help="Check the key without storing it")
    validate_parser.add_argument("api_key")

    test_parser = subparsers.add_parser("test", help="Send a test color to one device")
    test_parser.add_argument("device_id")
    test_parser.add_argument("--color", default="#FFFFFF", help="Hex color (default: #FFFFFF)")

    subparsers.add_parser("remove", help="Delete the stored key")

    args = parser.parse_args()

    try:
        sys.exit(
            asyncio.run(
                main(
                    command=args.command,
                    api_key=getattr(args, "api_key", None),
                    device_id=getattr(args, "device_id", None),
                    color=getattr(args, "color", "#FFFFFF"),
                )
            )
        )
    except KeyboardInterrupt:
        structlog.get_logger(service="configure-api-key").warning("interrupted_by_user")
        sys.exit(1)
