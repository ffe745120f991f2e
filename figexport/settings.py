"""Persisted user settings (tool locations and font path)."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

from .models import UserSettings

logger = logging.getLogger(__name__)

CONFIG_ENV = "FIGEXPORT_CONFIG"

UNIX_FONT_DIRS = [
    "/usr/share/fonts",
    "/usr/local/share/fonts",
    "/usr/share/fonts/X11",
    "/usr/local/share/fonts/X11",
    "/usr/share/fonts/truetype",
    "/usr/local/share/fonts/truetype",
]


def settings_path() -> Path:
    """Return the location of the settings file."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override)
    return Path.home() / ".config" / "figexport" / "settings.json"


def load_settings() -> UserSettings:
    """Load settings, returning defaults when the file is missing or unreadable."""
    path = settings_path()
    if not path.exists():
        return UserSettings()
    try:
        return UserSettings.from_file(path)
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return UserSettings()


def save_settings(settings: UserSettings) -> bool:
    """Write settings to disk. Returns False if the file could not be written."""
    path = settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(settings.to_json())
    except OSError as e:
        logger.warning(
            "Settings could not be saved in %s (perhaps a permissions issue): %s", path, e
        )
        return False
    return True


def get_setting(name: str) -> str | None:
    """Return one stored setting, or None."""
    if name not in UserSettings.keys():
        raise KeyError(f"Unknown setting: {name}")
    return getattr(load_settings(), name)


def update_setting(name: str, value: str | None) -> bool:
    """Persist a single setting value."""
    if name not in UserSettings.keys():
        raise KeyError(f"Unknown setting: {name}")
    settings = load_settings()
    setattr(settings, name, value)
    return save_settings(settings)


def font_path() -> str:
    """Return the font search path handed to Ghostscript.

    Uses the stored value when present, otherwise $GS_FONTPATH followed by the
    platform's font folders. The built path is stored for later calls.
    """
    stored = get_setting("gs_font_path")
    if stored:
        return stored

    env_path = os.environ.get("GS_FONTPATH", "")
    if sys.platform.startswith("win"):
        parts = [env_path] if env_path else []
        parts.append(os.path.join(os.environ.get("WINDIR", "C:\\Windows"), "Fonts"))
        fp = ";".join(parts)
    else:
        parts = [env_path] if env_path else []
        parts += UNIX_FONT_DIRS
        fp = ":".join(parts)

    update_setting("gs_font_path", fp)
    return fp


def describe() -> str:
    """Return the current settings as formatted JSON."""
    data = load_settings().to_dict()
    data["settings_file"] = str(settings_path())
    return json.dumps(data, indent=2)
