"""
Events delivered to the presentation layer.

The event channel carries decoded ``IncomingMessage`` values (including
``Unrecognized``) interleaved with the connection and diagnostic events
defined here, in the order they happened.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from shared.protocol import IncomingMessage
from .state import ConnectionState


@dataclass
class StateChanged:
    state: ConnectionState
    previous: ConnectionState


@dataclass
class Handshake:
    """Details of an opened connection."""

    url: str
    transport: str
    tls: bool
    http_status: Optional[int] = None
    headers: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class RawFrame:
    """Verbatim frame text, only produced when frame echo is enabled."""

    direction: str  # ">>" sent, "<<" received
    text: str


@dataclass
class ConnectFailed:
    url: str
    reason: str

    @property
    def message(self) -> str:
        return self.reason


@dataclass
class ConnectionLost:
    """The connection ended without the user asking for it."""

    reason: str

    @property
    def message(self) -> str:
        return f"Connection lost: {self.reason}"


@dataclass
class SettingsSaveFailed:
    reason: str

    @property
    def message(self) -> str:
        return f"Could not save settings: {self.reason}"


@dataclass
class PingRoundTrip:
    token: str
    roundtrip_ms: float


Diagnostic = Union[ConnectFailed, ConnectionLost, SettingsSaveFailed]

Event = Union[
    IncomingMessage,
    StateChanged,
    Handshake,
    RawFrame,
    ConnectFailed,
    ConnectionLost,
    SettingsSaveFailed,
    PingRoundTrip,
]
