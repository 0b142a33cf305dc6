import os
import tempfile
from pathlib import Path

import pytest

# Keep log files and the default settings path out of the developer's home
_scratch = Path(tempfile.mkdtemp(prefix="cybox-chat-tests-"))
os.environ.setdefault("CYBOX_CHAT_LOG_DIR", str(_scratch / "logs"))
os.environ.setdefault("CYBOX_CHAT_SETTINGS", str(_scratch / "settings.json"))


@pytest.fixture
def settings_paths(tmp_path):
    return tmp_path / "config" / "cybox-chat-gui" / "settings.json", tmp_path / "legacy-settings.json"


@pytest.fixture
def store(settings_paths):
    from chat_client.settings import SettingsStore

    primary, legacy = settings_paths
    return SettingsStore(path=primary, legacy_path=legacy)
