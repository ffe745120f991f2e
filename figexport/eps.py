"""Figure to EPS export with font swapping and bounding box correction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from .cropping import crop_borders
from .models import DEFAULT_RESOLUTION, ExportOptions
from .postscript import (
    FontSwap,
    adjust_bounding_box,
    apply_regexprep,
    encode_alpha_color,
    plan_font_swap,
    prepend_page_size,
    read_text_file,
    restore_alpha_colors,
    restore_swapped_fonts,
    write_text_file,
)
from .raster import print_to_array

if TYPE_CHECKING:
    from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

PS_POINTS_PER_INCH = 72


def page_size(fig: Figure, bbox_inches: Any = None) -> tuple[float, float]:
    """Return the exported page (width, height) in points."""
    if bbox_inches is not None and hasattr(bbox_inches, "width"):
        return bbox_inches.width * PS_POINTS_PER_INCH, bbox_inches.height * PS_POINTS_PER_INCH
    width, height = fig.get_size_inches() * PS_POINTS_PER_INCH
    return float(width), float(height)


def _implausible(bbox_rel: tuple[float, ...]) -> bool:
    """Check for a relative box that points to a failed content scan."""
    return any(v > 1 or v <= 0 for v in bbox_rel) or bbox_rel[1] > 0.15


def content_box(
    fig: Figure, options: ExportOptions, bbox_inches: Any = None
) -> tuple[float, float, float, float]:
    """Find the figure's content as a (left, bottom, right, top) fraction of the page.

    Renders the figure at 1x and crops it. If the box found against the
    figure's background colour looks implausible, the scan is repeated
    against the colours sampled from each edge.
    """
    facecolor = "none" if options.transparent else None
    image, background = print_to_array(fig, 1, facecolor=facecolor, bbox_inches=bbox_inches)
    bbox = crop_borders(image, background, 0, options.crop_amounts).bbox_rel
    if _implausible(bbox) and background is not None:
        logger.debug("Implausible content box %s, rescanning with edge colours", bbox)
        bbox = crop_borders(image, None, 0, options.crop_amounts).bbox_rel
    return tuple(float(v) for v in np.clip(bbox, 0, 1))  # type: ignore[return-value]


def _swap_fonts(fig: Figure, swaps_enabled: bool) -> tuple[list[FontSwap], Callable[[], None]]:
    """Set stand-in fonts on the figure's text. Returns the swaps and an undo function."""
    from matplotlib.text import Text

    if not swaps_enabled:
        return [], lambda: None

    texts = fig.findobj(Text)
    swaps = plan_font_swap([t.get_fontname() for t in texts])
    saved = []
    for swap in swaps:
        for i in swap.indices:
            saved.append((texts[i], texts[i].get_fontproperties().copy()))
            texts[i].set_fontfamily(swap.family)

    def undo() -> None:
        for text, prop in saved:
            text.set_fontproperties(prop)

    return swaps, undo


def _translucent(color: np.ndarray) -> bool:
    return 0 < color[3] < 1


def _encode_translucent(fig: Figure) -> tuple[list, Callable[[], None]]:
    """Replace translucent face/edge colours with unique opaque placeholders.

    The PostScript backend writes translucent colours as opaque. Each
    placeholder is found in the EPS afterwards and turned back into the
    original colour with an opacity operator.

    Returns:
        Tuple of (stored, undo): stored is a list of (placeholder rgb,
        original rgba) pairs and undo restores the artists
    """
    from matplotlib.collections import Collection
    from matplotlib.colors import to_rgba_array
    from matplotlib.patches import Patch

    stored: list[tuple[tuple[float, float, float], tuple[float, float, float, float]]] = []
    undo_steps: list[Callable[[], None]] = []

    for artist in fig.findobj(lambda a: isinstance(a, (Patch, Collection))):
        face = artist.get_facecolor()
        edge = artist.get_edgecolor()
        face_rgba = to_rgba_array(face)
        edge_rgba = to_rgba_array(edge)
        # Only uniformly coloured artists can be matched in the output
        if len(face_rgba) > 1 or len(edge_rgba) > 1:
            continue

        new_face = new_edge = None
        if len(face_rgba) and _translucent(face_rgba[0]):
            new_face = encode_alpha_color(len(stored))
            stored.append((new_face, tuple(face_rgba[0])))
        if len(edge_rgba) and _translucent(edge_rgba[0]):
            new_edge = encode_alpha_color(len(stored))
            stored.append((new_edge, tuple(edge_rgba[0])))
        if new_face is None and new_edge is None:
            continue

        alpha = artist.get_alpha()

        def undo(artist=artist, face=face, edge=edge, alpha=alpha) -> None:
            artist.set_facecolor(face)
            artist.set_edgecolor(edge)
            artist.set_alpha(alpha)

        undo_steps.append(undo)
        artist.set_alpha(None)
        artist.set_facecolor(new_face if new_face is not None else face)
        artist.set_edgecolor(new_edge if new_edge is not None else edge)

    def undo_all() -> None:
        for step in undo_steps:
            step()

    return stored, undo_all


def print_to_eps(
    name: str | Path,
    fig: Figure,
    options: ExportOptions | None = None,
    bbox_inches: Any = None,
) -> Path:
    """Export a figure to an EPS file.

    Text in non-standard fonts is written with a stand-in standard font whose
    name is swapped back afterwards, so that Ghostscript looks up the real
    font when converting. Translucent patches keep their opacity through
    ``.setopacityalpha``.

    Args:
        name: Output file name; ``.eps`` is appended when missing
        fig: Figure to export
        options: Export options (crop, padding, crop amounts, font swap,
            font_space, preserve_size, regexprep, resolution, transparent)
        bbox_inches: Region of the figure to export, in inches (default: all)

    Returns:
        Path of the written EPS file
    """
    import matplotlib

    options = options or ExportOptions()
    path = Path(name)
    if path.suffix.lower() != ".eps":
        path = Path(f"{name}.eps")

    facecolor = "none" if options.transparent else fig.get_facecolor()
    swaps, undo_fonts = _swap_fonts(fig, options.fontswap)
    stored, undo_colors = _encode_translucent(fig)
    try:
        with matplotlib.rc_context({"ps.useafm": options.fontswap}):
            fig.savefig(
                path,
                format="eps",
                dpi=options.resolution or DEFAULT_RESOLUTION,
                facecolor=facecolor,
                bbox_inches=bbox_inches,
            )
    finally:
        undo_colors()
        undo_fonts()

    try:
        text = read_text_file(path)
    except OSError as e:
        logger.warning("Loading EPS file failed, so unable to perform post-processing: %s", e)
        return path

    if stored:
        text, found = restore_alpha_colors(text, stored)
        if not all(found):
            logger.debug("%d of %d translucent colours not found in EPS", found.count(False), len(found))

    text = restore_swapped_fonts(text, swaps, options.font_space)

    if options.crop:
        text = adjust_bounding_box(
            text, content_box(fig, options, bbox_inches), options.bb_padding
        )

    if options.preserve_size:
        width, height = page_size(fig, bbox_inches)
        text = prepend_page_size(text, width, height)

    if options.regexprep:
        text = apply_regexprep(text, *options.regexprep)

    write_text_file(path, text)
    return path
