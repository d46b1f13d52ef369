"""StatusLight daemon - entry point.

Usage:
    python services/statuslight/main.py run
    python services/statuslight/main.py auth
    python services/statuslight/main.py sign-out
    python services/statuslight/main.py discover
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import httpx
import structlog

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from config.exceptions import StatusLightError
from config.logging import configure_logging
from statuslight.src.adapters.secret_store import SecretKeys, SecretStore, get_secret_store
from statuslight.src.config.app_config import StatusLightConfig
from statuslight.src.config.settings import StatusLightSettings, get_settings
from statuslight.src.core.command_dispatcher import CommandDispatcher
from statuslight.src.core.device_registry import DeviceRegistry
from statuslight.src.core.engine import StatusLightEngine
from statuslight.src.core.meeting_tracker import MeetingCountdownEngine
from statuslight.src.core.rate_limiter import SlidingWindowRateLimiter
from statuslight.src.integrations.govee.client import GoveeClient
from statuslight.src.integrations.microsoft_graph.auth import TokenLifecycleManager
from statuslight.src.integrations.microsoft_graph.client import MicrosoftGraphClient

logger = structlog.get_logger(__name__)


def load_app_config(settings: StatusLightSettings) -> StatusLightConfig:
    """YAML config when present, built-in defaults otherwise."""
    config_path = Path(settings.config_path)
    if not config_path.exists():
        logger.info("app_config_not_found_using_defaults", path=str(config_path))
        return StatusLightConfig()
    app_config = StatusLightConfig.from_yaml(str(config_path))
    logger.info(
        "app_config_loaded",
        path=str(config_path),
        assignments=len(app_config.device_assignments),
        tracker_enabled=app_config.meeting_tracker.enabled,
    )
    return app_config


def build_engine(
    settings: StatusLightSettings,
    http_client: httpx.AsyncClient,
    store: SecretStore,
    app_config: Optional[StatusLightConfig] = None,
) -> StatusLightEngine:
    """Construct every service and inject them into the engine."""
    app_config = app_config or StatusLightConfig()
    graph_config = settings.graph_config()

    rate_limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    token_manager = TokenLifecycleManager(
        config=graph_config,
        http_client=http_client,
        store=store,
        buffer_seconds=settings.token_refresh_buffer_seconds,
    )
    graph_client = MicrosoftGraphClient(graph_config, http_client, token_manager)
    govee_client = GoveeClient(
        http_client,
        rate_limiter,
        api_key=settings.govee_api_key,
        base_url=settings.govee_base_url,
    )

    registry = DeviceRegistry(store)
    registry.apply_assignments(app_config.device_assignments)

    return StatusLightEngine(
        token_manager=token_manager,
        graph_client=graph_client,
        govee_client=govee_client,
        registry=registry,
        dispatcher=CommandDispatcher(registry, govee_client),
        tracker=MeetingCountdownEngine(app_config.meeting_tracker.to_tracker_config()),
        store=store,
        color_mapping=app_config.color_mapping.to_color_mapping(),
        presence_interval=settings.presence_poll_interval,
        calendar_interval=settings.calendar_poll_interval,
        safety_interval=settings.safety_recompute_interval,
        calendar_lookahead_hours=settings.calendar_lookahead_hours,
    )


class StatusLightDaemon:
    """Long-running StatusLight process."""

    def __init__(self, settings: StatusLightSettings, ephemeral: bool = False):
        self.settings = settings
        self.ephemeral = ephemeral
        self.http_client: Optional[httpx.AsyncClient] = None
        self.engine: Optional[StatusLightEngine] = None
        self.shutdown_event = asyncio.Event()

    async def setup(self) -> StatusLightEngine:
        """Create HTTP client, secret store and engine."""
        logger.info("statuslight_setup", environment=self.settings.environment)

        self.http_client = httpx.AsyncClient(timeout=httpx.Timeout(15.0))
        store = get_secret_store(
            self.settings.secret_store_path,
            sops_enabled=self.settings.secret_store_sops_enabled,
            ephemeral=self.ephemeral,
        )
        self.engine = build_engine(
            self.settings, self.http_client, store, load_app_config(self.settings)
        )
        self._subscribe_logging(self.engine)
        return self.engine

    def _subscribe_logging(self, engine: StatusLightEngine) -> None:
        engine.presence.subscribe(
            lambda state: state
            and logger.info(
                "presence_changed",
                presence=state.presence.value,
                activity=state.activity,
            )
        )
        engine.last_error.subscribe(
            lambda message: message and logger.warning("statuslight_error", message=message)
        )
        engine.auth_state.subscribe(
            lambda state: logger.info("auth_state_changed", state=state.value)
        )

    async def run(self):
        """Start the engine and wait for a shutdown signal."""
        engine = await self.setup()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))

        try:
            await engine.start()
            await self.shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("statuslight_cancelled")
        finally:
            await self.cleanup()

    async def shutdown(self):
        """Trigger graceful shutdown."""
        logger.info("shutdown_signal_received")
        self.shutdown_event.set()

    async def cleanup(self):
        """Stop pollers and close connections."""
        logger.info("cleaning_up")

        if self.engine:
            await self.engine.stop()

        if self.http_client:
            await self.http_client.aclose()

        logger.info("statuslight_stopped")


async def authenticate(settings: StatusLightSettings) -> None:
    daemon = StatusLightDaemon(settings)
    engine = await daemon.setup()
    try:
        await engine.authenticate_teams()
        print("Signed in to Microsoft Teams.")
    finally:
        await daemon.cleanup()


async def sign_out(settings: StatusLightSettings) -> None:
    daemon = StatusLightDaemon(settings)
    engine = await daemon.setup()
    try:
        await engine.token_manager.sign_out()
        print("Signed out of Microsoft Teams.")
    finally:
        await daemon.cleanup()


async def discover(settings: StatusLightSettings) -> None:
    daemon = StatusLightDaemon(settings)
    engine = await daemon.setup()
    try:
        await engine.registry.load()
        api_key = await engine.store.retrieve(SecretKeys.GOVEE_API_KEY)
        if api_key:
            engine.govee_client.set_api_key(api_key)
        devices = await engine.registry.replace_devices(
            await engine.govee_client.discover_devices()
        )
        for device in devices:
            print(
                "%-24s %-10s %-28s color=%s selected=%s assignment=%s"
                % (
                    device.id,
                    device.sku,
                    device.device_name,
                    "yes" if device.supports_color else "no",
                    "yes" if engine.registry.is_selected(device.id) else "no",
                    engine.registry.assignment_for(device.id).value,
                )
            )
        print("%d device(s) found." % len(devices))
    finally:
        await daemon.cleanup()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StatusLight - Teams presence on Govee lights")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override STATUSLIGHT_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--ephemeral",
        action="store_true",
        help="Keep secrets in memory only (nothing written to disk)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Run the daemon (default)")
    subparsers.add_parser("auth", help="Sign in to Microsoft Teams (opens a browser)")
    subparsers.add_parser("sign-out", help="Forget the stored Microsoft tokens")
    subparsers.add_parser("discover", help="List Govee devices for the stored API key")
    return parser


def main(argv: Optional[list] = None):
    """Daemon entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    configure_logging(
        level=args.log_level or settings.log_level,
        json_format=settings.log_json and not settings.is_development,
        enable_colors=settings.is_development,
    )

    command = args.command or "run"
    try:
        if command == "run":
            asyncio.run(StatusLightDaemon(settings, ephemeral=args.ephemeral).run())
        elif command == "auth":
            asyncio.run(authenticate(settings))
        elif command == "sign-out":
            asyncio.run(sign_out(settings))
        elif command == "discover":
            asyncio.run(discover(settings))
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")
    except StatusLightError as e:
        logger.error("statuslight_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)
    except Exception as e:
        logger.error("fatal_error", error=str(e), exc_info=True)
        sys.exit(2)


if __name__ == "__main__":
    main()
