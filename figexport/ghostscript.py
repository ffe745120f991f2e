"""Ghostscript discovery and invocation."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from .exceptions import ExternalToolError, GhostscriptNotFoundError
from .external import IS_MAC, IS_WINDOWS, locate_tool, run_command

logger = logging.getLogger(__name__)

GS_URL_MAC = "http://pages.uoregon.edu/koch"
GS_URL = "http://ghostscript.com"

_checked: dict[str, bool] = {}


def check_gs_path(path: str) -> bool:
    """Check that path runs as Ghostscript (``gs -h`` exits cleanly)."""
    if not path:
        return False
    if path not in _checked:
        try:
            status, _ = run_command(path, ["-h"])
        except OSError:
            status = -1
        _checked[path] = status == 0
    return _checked[path]


def _windows_install_candidates() -> list[Path]:
    """Executables under Program Files, newest Ghostscript version first."""
    found: list[tuple[float, Path]] = []
    for base in (Path("C:/Program Files/gs"), Path("C:/Program Files (x86)/gs")):
        if not base.is_dir():
            continue
        for version_dir in base.iterdir():
            match = re.match(r"gs(\d+(?:\.\d+)?)", version_dir.name)
            if not match:
                continue
            for exe in ("gswin32c.exe", "gswin64c.exe"):
                path = version_dir / "bin" / exe
                if path.exists():
                    found.append((float(match.group(1)), path))
    found.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in found]


def find_ghostscript() -> str:
    """Return the path of a working Ghostscript executable.

    Raises:
        GhostscriptNotFoundError: if no installation could be found
    """
    if IS_WINDOWS:
        names = ["gswin32c.exe", "gswin64c.exe", "gs"]
        fallback = _windows_install_candidates()
    else:
        names = ["gs"]
        fallback = ["/usr/bin/gs", "/usr/local/bin/gs"]
        if IS_MAC:
            fallback.append("/opt/homebrew/bin/gs")

    path = locate_tool("ghostscript", names, fallback, check_gs_path)
    if path is None:
        raise GhostscriptNotFoundError(GS_URL_MAC if IS_MAC else GS_URL)
    return path


def ghostscript(args: Sequence[str]) -> tuple[int, str]:
    """Run Ghostscript with an argument list.

    Returns:
        Tuple of (status, message) where status 0 means success
    """
    path = find_ghostscript()
    try:
        return run_command(path, list(args))
    except OSError as e:
        logger.error(
            "Ghostscript could not be run. Rolling back to GS 9.10 may possibly solve this: "
            "https://github.com/altmany/export_fig/issues/12#issuecomment-61467998"
        )
        if not IS_WINDOWS:
            logger.error(
                "Alternatively, this may possibly be due to a font path issue: "
                "https://github.com/altmany/export_fig/issues/27"
            )
        raise ExternalToolError("Ghostscript", str(e))


def gs_version() -> str:
    """Return the Ghostscript version string, or '' if it cannot be determined."""
    try:
        status, message = ghostscript(["--version"])
    except ExternalToolError:
        return ""
    return message.strip() if status == 0 else ""
