"""StatusLight configuration (environment settings + YAML config)."""

from .app_config import ColorMappingSettings, MeetingTrackerSettings, StatusLightConfig
from .settings import StatusLightSettings, get_settings

__all__ = [
    "ColorMappingSettings",
    "MeetingTrackerSettings",
    "StatusLightConfig",
    "StatusLightSettings",
    "get_settings",
]
