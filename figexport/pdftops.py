"""pdftops discovery and PDF to EPS conversion."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .exceptions import ExternalToolError, PdftopsNotFoundError
from .external import IS_WINDOWS, locate_tool, run_command
from .postscript import read_text_file, write_text_file

logger = logging.getLogger(__name__)

XPDF_URL = "http://xpdfreader.com/download.html"


def check_xpdf_path(path: str) -> bool:
    """Check that path runs as pdftops (its help text mentions PostScript)."""
    if not path:
        return False
    try:
        _, message = run_command(path, ["-h"])
    except OSError:
        return False
    good = "PostScript" in message
    if not good and Path(path).exists():
        logger.error("Error running %s:\n%s", path, message)
    return good


def find_pdftops() -> str:
    """Return the path of a working pdftops executable.

    Raises:
        PdftopsNotFoundError: if no installation could be found
    """
    if IS_WINDOWS:
        names = ["pdftops.exe"]
        fallback = [
            "C:/Program Files/xpdf/pdftops.exe",
            "C:/Program Files (x86)/xpdf/pdftops.exe",
        ]
    else:
        names = ["pdftops"]
        fallback = ["/usr/bin/pdftops", "/usr/local/bin/pdftops"]

    path = locate_tool("pdftops", names, fallback, check_xpdf_path)
    if path is None:
        raise PdftopsNotFoundError(XPDF_URL)
    return path


def pdftops(args: Sequence[str]) -> tuple[int, str]:
    """Run pdftops with an argument list and return (status, message)."""
    path = find_pdftops()
    try:
        return run_command(path, list(args))
    except OSError as e:
        raise ExternalToolError("pdftops", str(e))


def fix_dsc_header(text: str) -> str:
    """Repair the DSC comment pdftops writes on the second line as '% Produced by'."""
    lines = text.split("\n", 2)
    if len(lines) > 1 and lines[1].startswith("% Produced by"):
        lines[1] = "%%" + lines[1][2:]
    return "\n".join(lines)


def pdf_to_eps(source: str | Path, dest: str | Path) -> None:
    """Convert a PDF file to EPS using pdftops.

    Raises:
        ExternalToolError: if pdftops fails
    """
    status, message = pdftops(["-q", "-paper", "match", "-eps", "-level2", str(source), str(dest)])
    if status:
        if message:
            raise ExternalToolError("pdftops", message)
        raise ExternalToolError(
            "pdftops",
            f"Unable to generate EPS from {source}",
            "Unable to generate EPS. Check destination directory is writable.",
        )

    text = read_text_file(dest)
    fixed = fix_dsc_header(text)
    if fixed != text:
        write_text_file(dest, fixed)
