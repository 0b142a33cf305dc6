"""cybox-chat client: settings, connection lifecycle and session facade."""

__version__ = "0.1.0"
