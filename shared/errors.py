from __future__ import annotations

from typing import Optional


class ChatClientError(Exception):
    """Base class for errors reported to the caller of the chat client."""


class LocalValidationError(ChatClientError):
    """User input rejected before any network activity."""


class EmptyInputError(LocalValidationError):
    def __init__(self) -> None:
        super().__init__("empty input")


class MissingArgumentError(LocalValidationError):
    """A command was given without its required argument."""

    def __init__(self, command: str, argument: str, usage: Optional[str] = None) -> None:
        self.command = command
        self.argument = argument
        self.usage = usage
        super().__init__(f"missing {argument}")


class UnknownCommandError(LocalValidationError):
    def __init__(self, word: str) -> None:
        self.word = word
        super().__init__(f"Unknown command: {word}")


class MessageTooLongError(LocalValidationError):
    def __init__(self, what: str, limit: int) -> None:
        self.what = what
        self.limit = limit
        super().__init__(f"{what} is too long (max {limit} characters)")


class NotConnectedError(ChatClientError):
    """Raised when sending while the connection is not established."""

    def __init__(self, state: str = "disconnected") -> None:
        self.state = state
        super().__init__(f"Not connected (state: {state})")


class SettingsError(ChatClientError):
    pass


class SettingsSaveError(SettingsError):
    """Raised when the settings file cannot be written."""


class InvalidServerUrlError(LocalValidationError):
    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid server URL: {url!r} (expected ws://host:port or wss://...)")
