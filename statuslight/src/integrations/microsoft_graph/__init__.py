"""Microsoft Graph integration module (Teams presence + Outlook calendar)."""

from .auth import (
    AuthState,
    InstalledAppAuthorizer,
    OAuthTokenSet,
    TokenLifecycleManager,
)
from .client import MicrosoftGraphClient
from .config import GraphConfig

__all__ = [
    "AuthState",
    "GraphConfig",
    "InstalledAppAuthorizer",
    "MicrosoftGraphClient",
    "OAuthTokenSet",
    "TokenLifecycleManager",
]
