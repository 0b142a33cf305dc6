"""
Helpers the settings layer and the CLI call to decide whether a server
address typed by the user is usable before anything is persisted.
"""

from __future__ import annotations
from urllib.parse import urlsplit

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================

WS_SCHEMES = ("ws", "wss")


def is_ws_url(s: str) -> bool:
    """
    Accepts 'ws://host[:port][/path]' or 'wss://...'.

    - scheme must be ws or wss
    - hostname must be non-empty
    - port, if given, must be an integer between 1 and 65535
    """
    try:
        parts = urlsplit(s.strip())
        if parts.scheme.lower() not in WS_SCHEMES:
            return False
        if not parts.hostname:
            return False
        port = parts.port  # ValueError if not numeric / out of range
        return port is None or 0 < port <= 65535
    except (ValueError, AttributeError):
        return False


def transport_of(url: str) -> str:
    """Return 'wss' for TLS URLs and 'ws' otherwise."""
    return "wss" if url.strip().lower().startswith("wss://") else "ws"
