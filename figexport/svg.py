"""Figure to SVG export with a cropped viewBox."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any
from xml.etree import ElementTree as ET

import numpy as np

from .cropping import round_half_away
from .eps import content_box, page_size
from .models import ExportOptions

if TYPE_CHECKING:
    from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"

# Register namespaces for clean output without ns0: prefixes
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", "http://www.w3.org/1999/xlink")

# Same margin as the EPS bounding box, in points
MARGIN = 2.0

_LENGTH = re.compile(r"([-\d.]+)([a-z%]*)")


def tight_viewbox(
    page: tuple[float, float],
    bbox_rel: tuple[float, float, float, float],
    padding: float = 0.0,
) -> tuple[float, float, float, float]:
    """Compute an SVG viewBox (x, y, width, height) around the content.

    Args:
        page: Page (width, height) in points
        bbox_rel: (left, bottom, right, top) content box as page fractions, y up
        padding: Padding in points, or a fraction of the box size if |padding| < 1
    """
    page_w, page_h = page
    left = page_w * bbox_rel[0]
    right = page_w * bbox_rel[2]
    # SVG y axis points down
    top = page_h * (1 - bbox_rel[3])
    bottom = page_h * (1 - bbox_rel[1])

    if padding and abs(padding) < 1:
        size = np.mean([right - left, bottom - top])
        padding = round_half_away(size * padding / 0.5) * 0.5
    margin = MARGIN + padding

    x = left - margin
    y = top - margin
    width = max(right - left + 2 * margin, 0.0)
    height = max(bottom - top + 2 * margin, 0.0)
    return (x, y, width, height)


def _format(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def print_to_svg(
    name: str | Path,
    fig: Figure,
    options: ExportOptions | None = None,
    bbox_inches: Any = None,
) -> Path:
    """Export a figure to SVG, cropping the viewBox to the content when requested."""
    options = options or ExportOptions()
    path = Path(name)
    if path.suffix.lower() != ".svg":
        path = Path(f"{name}.svg")

    facecolor = "none" if options.transparent else fig.get_facecolor()
    fig.savefig(path, format="svg", facecolor=facecolor, bbox_inches=bbox_inches)

    if not options.crop:
        return path

    tree = ET.parse(path)
    root = tree.getroot()
    viewbox = tight_viewbox(
        page_size(fig, bbox_inches), content_box(fig, options, bbox_inches), options.bb_padding
    )

    unit = "pt"
    match = _LENGTH.fullmatch(root.get("width", ""))
    if match and match.group(2):
        unit = match.group(2)

    root.set("viewBox", " ".join(_format(v) for v in viewbox))
    root.set("width", f"{_format(viewbox[2])}{unit}")
    root.set("height", f"{_format(viewbox[3])}{unit}")
    tree.write(path, encoding="utf-8", xml_declaration=True)
    logger.debug("Tightened SVG viewBox of %s to %s", path, root.get("viewBox"))
    return path
