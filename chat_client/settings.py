"""
Persistent client preferences.

A single JSON record ``{"server_url": ..., "username": ...}`` lives at a
per-user path. Older releases kept the file next to the working directory;
that legacy file is only ever read, and its values move to the primary path
the first time settings are saved.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from shared.errors import SettingsSaveError
from shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_SERVER_URL = "ws://127.0.0.1:3001"

SETTINGS_DIR = Path(".config") / "cybox-chat-gui"
SETTINGS_FILE = "settings.json"
LEGACY_SETTINGS_FILE = ".cybox-chat-gui-settings.json"


def default_settings_path() -> Path:
    """Primary settings path; ``CYBOX_CHAT_SETTINGS`` overrides it."""
    override = os.getenv("CYBOX_CHAT_SETTINGS")
    if override:
        return Path(override).expanduser()
    return Path.home() / SETTINGS_DIR / SETTINGS_FILE


def default_legacy_path() -> Path:
    return Path(LEGACY_SETTINGS_FILE)


@dataclass
class Settings:
    server_url: str = DEFAULT_SERVER_URL
    username: Optional[str] = None

    @property
    def preferred_name(self) -> Optional[str]:
        """The stored name with surrounding whitespace removed, or None."""
        if self.username and self.username.strip():
            return self.username.strip()
        return None

    @classmethod
    def from_dict(cls, data: Any) -> Optional[Settings]:
        """Build settings from a parsed record, or None when it is malformed."""
        if not isinstance(data, dict):
            return None
        server_url = data.get("server_url")
        username = data.get("username")
        if not isinstance(server_url, str) or not server_url.strip():
            return None
        if username is not None and not isinstance(username, str):
            return None
        return cls(server_url=server_url.strip(), username=username or None)

    def to_dict(self) -> Dict[str, Any]:
        # older readers expect a string, never null
        return {"server_url": self.server_url, "username": self.username or ""}


class SettingsStore:
    """
    Loads and saves ``Settings``.

    Reads never fail: a missing, unreadable or malformed file counts as
    absent. Writes replace the whole record atomically.
    """

    def __init__(self, path: Optional[Path] = None, legacy_path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else default_settings_path()
        self.legacy_path = Path(legacy_path) if legacy_path is not None else default_legacy_path()
        self.loaded_from: Optional[Path] = None

    def _read(self, file_path: Path) -> Optional[Settings]:
        if not file_path.exists():
            return None
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable settings file {file_path}: {e}")
            return None

        settings = Settings.from_dict(data)
        if settings is None:
            logger.warning(f"Ignoring malformed settings file {file_path}")
        return settings

    def load(self) -> Settings:
        """Primary path, then legacy path, then defaults."""
        for candidate in (self.path, self.legacy_path):
            settings = self._read(candidate)
            if settings is not None:
                self.loaded_from = candidate
                logger.debug(f"Loaded settings from {candidate}")
                return settings

        self.loaded_from = None
        logger.debug("No settings file found, using defaults")
        return Settings()

    def save(self, settings: Settings) -> None:
        """
        Atomically write the full record to the primary path.

        Raises:
            SettingsSaveError: the directory or file could not be written
        """
        tmp_path: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f"{self.path.stem}_",
                suffix=".json.tmp",
                dir=self.path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(settings.to_dict(), tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write settings to {self.path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            raise SettingsSaveError(f"Failed to write settings file: {e}") from e

        if self.loaded_from is not None and self.loaded_from != self.path:
            logger.info(f"Migrated settings from {self.loaded_from} to {self.path}")
        self.loaded_from = self.path
        logger.debug(f"Saved settings to {self.path}")
