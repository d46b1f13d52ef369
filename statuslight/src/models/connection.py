"""Upstream connection status."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionStatus(BaseModel):
    """Connection status of one upstream (Teams or Govee)."""

    model_config = ConfigDict(frozen=True)

    state: ConnectionState = ConnectionState.DISCONNECTED
    message: Optional[str] = None

    @classmethod
    def disconnected(cls) -> "ConnectionStatus":
        return cls(state=ConnectionState.DISCONNECTED)

    @classmethod
    def connecting(cls) -> "ConnectionStatus":
        return cls(state=ConnectionState.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionStatus":
        return cls(state=ConnectionState.CONNECTED)

    @classmethod
    def error(cls, message: str) -> "ConnectionStatus":
        return cls(state=ConnectionState.ERROR, message=message)

    @property
    def display_text(self) -> str:
        if self.state == ConnectionState.ERROR:
            return "Error: %s" % (self.message or "unknown")
        return self.state.value.capitalize()
