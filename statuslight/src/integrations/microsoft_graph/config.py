"""Microsoft Graph configuration models."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com/common"
DEFAULT_SCOPES = [
    "https://graph.microsoft.com/Presence.Read",
    "https://graph.microsoft.com/Calendars.Read",
    "https://graph.microsoft.com/User.Read",
    "offline_access",
]


class GraphConfig(BaseModel):
    """Microsoft Graph application registration.

    Attributes:
        client_id: Azure application (client) ID
        client_secret: Client secret, None for public clients
        authority: Login authority (tenant-specific or ``common``)
        scopes: Delegated permission scopes
        base_url: Graph API base URL
        redirect_port: Localhost port for the authorization redirect (0 = any)
        calendar_timezone: Time zone requested via ``Prefer: outlook.timezone``
    """

    client_id: Optional[str] = Field(default=None, description="Azure client ID")
    client_secret: Optional[str] = Field(default=None, description="Azure client secret")
    authority: str = Field(default=DEFAULT_AUTHORITY, description="Login authority")
    scopes: List[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    base_url: str = Field(default=GRAPH_BASE_URL, description="Graph API base URL")
    redirect_port: int = Field(default=0, ge=0, le=65535)
    calendar_timezone: str = Field(default="UTC", description="Calendar time zone")

    @field_validator("authority", "base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)
