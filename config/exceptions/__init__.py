"""
StatusLight - Canonical exception hierarchy.

Source of truth for all StatusLight exceptions. Every external call site
(Microsoft Graph, Govee, secret store) converts its failures into one of
these kinds before handing them back to the caller.
"""


class StatusLightError(Exception):
    """Base exception StatusLight."""

    #: Short human-readable text for the presentation layer.
    user_message = "Unexpected error"

    def __str__(self) -> str:
        text = super().__str__()
        return text or self.user_message


class NotAuthenticatedError(StatusLightError):
    """No valid access token or API key is available."""

    user_message = "Not authenticated"


class AuthExpiredError(StatusLightError):
    """Token refresh failed; an interactive sign-in is required."""

    user_message = "Authentication has expired, please sign in again"


class RateLimitedError(StatusLightError):
    """Upstream API answered with a budget-exceeded response."""

    user_message = "Rate limit exceeded, please try again in a minute"


class DeviceNotFoundError(StatusLightError):
    """Device unknown upstream or not accessible with this key."""

    user_message = "Device not found or not accessible"


class InvalidResponseError(StatusLightError):
    """Malformed or unexpected payload."""

    user_message = "Invalid response from upstream API"


class NetworkError(StatusLightError):
    """Transport-level failure (DNS, TLS, timeout, 5xx)."""

    user_message = "Network connection error"


class ConfigurationError(StatusLightError):
    """Missing or invalid local configuration (client id, API key...)."""

    user_message = "Configuration error"


class SecretStoreError(StatusLightError):
    """Secure store read/write failure."""

    user_message = "Failed to access secure storage"
