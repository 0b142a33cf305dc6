from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the connection lifecycle. ``url`` is set while connecting/connected."""

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    url: Optional[str] = None

    @classmethod
    def disconnected(cls) -> ConnectionState:
        return cls(ConnectionPhase.DISCONNECTED)

    @classmethod
    def connecting(cls, url: str) -> ConnectionState:
        return cls(ConnectionPhase.CONNECTING, url)

    @classmethod
    def connected(cls, url: str) -> ConnectionState:
        return cls(ConnectionPhase.CONNECTED, url)

    @classmethod
    def disconnecting(cls) -> ConnectionState:
        return cls(ConnectionPhase.DISCONNECTING)

    @property
    def is_connected(self) -> bool:
        return self.phase is ConnectionPhase.CONNECTED

    @property
    def is_active(self) -> bool:
        """Connecting or connected."""
        return self.phase in (ConnectionPhase.CONNECTING, ConnectionPhase.CONNECTED)

    def __str__(self) -> str:
        if self.url:
            return f"{self.phase.value}({self.url})"
        return self.phase.value
