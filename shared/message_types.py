from __future__ import annotations

from enum import Enum


class OutgoingType(str, Enum):
    """Message types the client sends to the chat server."""

    CHAT = "chat"
    SET_NAME = "setName"
    STATUS = "status"
    LIST_USERS = "listUsers"
    PING = "ping"
    AI = "ai"


class IncomingType(str, Enum):
    """Message types the chat server sends to clients."""

    CHAT = "chat"                # Broadcast chat line
    SYSTEM = "system"            # Join/leave/rename notices
    ACK_NAME = "ackName"         # Server accepted a setName
    STATUS = "status"            # Reply to status
    LIST_USERS = "listUsers"     # Reply to listUsers
    ERROR = "error"              # Server-side rejection
    PONG = "pong"                # Reply to ping
    AI = "ai"                    # AI answer, broadcast to everyone

    @classmethod
    def from_string(cls, value: str) -> IncomingType:
        """Convert string to IncomingType, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown message type: {value}")

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if string is a known incoming message type."""
        try:
            cls(value)
            return True
        except ValueError:
            return False

