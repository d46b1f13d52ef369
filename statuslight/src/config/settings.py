"""
StatusLight - configuration via Pydantic Settings.

All values from environment variables (``STATUSLIGHT_`` prefix) or a
``.env`` file. NEVER hardcode credentials.
"""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from statuslight.src.integrations.microsoft_graph.config import (
    DEFAULT_AUTHORITY,
    DEFAULT_SCOPES,
    GRAPH_BASE_URL,
    GraphConfig,
)
from statuslight.src.integrations.govee.client import GOVEE_BASE_URL


class StatusLightSettings(BaseSettings):
    """StatusLight configuration loaded from environment variables."""

    # Environment / logging
    environment: str = "production"
    log_level: str = "INFO"
    log_json: bool = True

    # Microsoft Graph
    graph_client_id: Optional[str] = None
    graph_client_secret: Optional[str] = None  # MUST be set via env var if used
    graph_authority: str = DEFAULT_AUTHORITY
    graph_scopes: list[str] = list(DEFAULT_SCOPES)
    graph_base_url: str = GRAPH_BASE_URL
    graph_redirect_port: int = 0
    calendar_timezone: str = "UTC"
    calendar_lookahead_hours: int = 24

    # Govee
    govee_api_key: Optional[str] = None  # bootstrap only, the secret store wins
    govee_base_url: str = GOVEE_BASE_URL

    # Polling (seconds)
    presence_poll_interval: float = 15.0
    calendar_poll_interval: float = 60.0
    safety_recompute_interval: float = 60.0

    # Rate limit
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0

    # OAuth
    token_refresh_buffer_seconds: int = 300

    # Persistence
    secret_store_path: str = "~/.config/statuslight/secrets.json"
    secret_store_sops_enabled: bool = False

    # Static YAML config (color mapping, tracker, assignments)
    config_path: str = "config/statuslight.yaml"

    model_config = SettingsConfigDict(
        env_prefix="STATUSLIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got '{v}'")
        return level

    @field_validator("calendar_lookahead_hours")
    @classmethod
    def validate_lookahead(cls, v: int) -> int:
        if not 1 <= v <= 168:
            raise ValueError(f"calendar_lookahead_hours must be in [1, 168], got {v}")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    def graph_config(self) -> GraphConfig:
        return GraphConfig(
            client_id=self.graph_client_id,
            client_secret=self.graph_client_secret,
            authority=self.graph_authority,
            scopes=self.graph_scopes,
            base_url=self.graph_base_url,
            redirect_port=self.graph_redirect_port,
            calendar_timezone=self.calendar_timezone,
        )


@lru_cache
def get_settings() -> StatusLightSettings:
    """Factory for StatusLight settings (cached singleton)."""
    return StatusLightSettings()
