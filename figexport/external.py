"""Helpers for locating and running external command-line tools."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .settings import get_setting, update_setting

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform.startswith("win")
IS_MAC = sys.platform == "darwin"


def tool_env() -> dict[str, str]:
    """Environment for external tools.

    Library paths are cleared on Linux/macOS; Ghostscript 9.07 fails when it
    picks up the host application's libraries.
    """
    env = os.environ.copy()
    if IS_MAC:
        env["DYLD_LIBRARY_PATH"] = ""
    elif not IS_WINDOWS:
        env["LD_LIBRARY_PATH"] = ""
    return env


def run_command(executable: str, args: Sequence[str]) -> tuple[int, str]:
    """Run an executable and return (status, combined output).

    Raises:
        OSError: if the executable cannot be started
    """
    cmd = [executable, *args]
    logger.debug("Running: %s", subprocess.list2cmdline(cmd))
    result = subprocess.run(cmd, capture_output=True, text=True, env=tool_env())
    return result.returncode, (result.stdout or "") + (result.stderr or "")


def locate_tool(
    setting: str,
    names: Iterable[str],
    fallback_paths: Iterable[str | Path],
    is_valid: Callable[[str], bool],
) -> str | None:
    """Find a working executable and remember it in the settings.

    Search order: stored setting, names on PATH, then fallback locations.
    """
    stored = get_setting(setting)
    if stored and is_valid(stored):
        return stored

    candidates: list[str] = []
    for name in names:
        found = shutil.which(name)
        if found:
            candidates.append(found)
    candidates += [str(p) for p in fallback_paths]

    for candidate in candidates:
        if is_valid(candidate):
            if not update_setting(setting, candidate):
                logger.warning(
                    "Path to %s could not be saved. Enter it manually with "
                    "'figexport config set %s %s'.",
                    setting,
                    setting,
                    candidate,
                )
            return candidate
    return None
