"""Text-level patching of EPS files written by the PostScript backend."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

from .cropping import round_half_away

logger = logging.getLogger(__name__)

# Fonts every PostScript interpreter provides, as (family, PostScript name
# stem). Text-encoded ones double as stand-ins for non-standard fonts while
# the EPS is written.
STANDARD_FONTS = [
    ("Helvetica", "Helvetica"),
    ("Times", "Times"),
    ("Courier", "Courier"),
    ("Palatino", "Palatino"),
    ("New Century Schoolbook", "NewCenturySchlbk"),
    ("ITC Bookman", "Bookman"),
    ("ITC Avant Garde Gothic", "AvantGarde"),
    ("ITC Zapf Chancery", "ZapfChancery"),
    ("Helvetica Narrow", "Helvetica-Narrow"),
    ("Symbol", "Symbol"),
    ("ITC Zapf Dingbats", "ZapfDingbats"),
]

# Symbol-encoded fonts cannot stand in for text fonts
_STAND_IN_FONTS = STANDARD_FONTS[:8]

# Style suffixes of the regular weight in the standard AFM font names
_REGULAR_STYLES = ("", "Roman", "Book", "Light", "MediumItalic")

MAX_FONT_NAME = 29

_BBOX = re.compile(
    r"%%BoundingBox:[ ]+(-?\d+(?:\.\d+)?)[ ]+(-?\d+(?:\.\d+)?)[ ]+(-?\d+(?:\.\d+)?)[ ]+(-?\d+(?:\.\d+)?)"
)
_HIRES_BBOX = re.compile(
    r"%%HiResBoundingBox:[ ]+(-?[\d.]+)[ ]+(-?[\d.]+)[ ]+(-?[\d.]+)[ ]+(-?[\d.]+)"
)
_PAGE_BBOX = re.compile(
    r"%%PageBoundingBox:[ ]+(-?[\d.]+)[ ]+(-?[\d.]+)[ ]+(-?[\d.]+)[ ]+(-?[\d.]+)"
)
_SETGRAY = re.compile(r"(?m)^([\d.]+) setgray$")
_SETRGB = re.compile(r"(?m)^([\d.]+) ([\d.]+) ([\d.]+) setrgbcolor$")
_OPACITY = re.compile(r"0?\.\d+ \.setopacityalpha \w+\n")


def read_text_file(path: str | Path) -> str:
    """Read an entire file as text, byte-for-byte."""
    with open(path, encoding="latin-1", newline="") as f:
        return f.read()


def write_text_file(path: str | Path, text: str) -> None:
    """Write text to a file, byte-for-byte."""
    with open(path, "w", encoding="latin-1", newline="") as f:
        f.write(text)


def num_to_str(value: float) -> str:
    """Format a number the way the PostScript backend writes colours."""
    return f"{value:1.3f}".rstrip("0").rstrip(".")


# =============================================================================
# Font swapping
# =============================================================================


@dataclass
class FontSwap:
    """A non-standard font temporarily replaced by an unused standard font."""

    indices: list[int]
    """Positions (in the font list) of the text objects using the font."""

    family: str
    """Standard font family set on the text objects while the EPS is written."""

    stem: str
    """PostScript name stem of the standard font, e.g. ``Times``."""

    original: str
    """Original font name, restored in the EPS afterwards."""


def normalise_font(name: str) -> str:
    """Return a comparison key for a font name, folding common spellings."""
    key = name.lower().replace(" ", "")
    if key.startswith("itc"):
        key = key[3:]
    aliases = {
        "timesnewroman": "times",
        "times-roman": "times",
        "newcenturyschoolbook": "newcenturyschlbk",
        "avantgardegothic": "avantgarde",
        "helveticanarrow": "helvetica-narrow",
    }
    return aliases.get(key, key)


_STANDARD_KEYS = {normalise_font(stem) for _, stem in STANDARD_FONTS} | {
    normalise_font(family) for family, _ in STANDARD_FONTS
}


def plan_font_swap(fonts: Sequence[str]) -> list[FontSwap]:
    """Pair each non-standard font with a standard font the figure does not use.

    Args:
        fonts: Font name of each text object, in a fixed order

    Returns:
        List of FontSwap entries; fonts beyond the number of unused standard
        fonts are left alone
    """
    keys = [normalise_font(f) for f in fonts]
    used = set(keys)

    require_swap = sorted(k for k in used if k not in _STANDARD_KEYS)
    unused = [
        (family, stem)
        for family, stem in _STAND_IN_FONTS
        if normalise_font(family) not in used and normalise_font(stem) not in used
    ]

    swaps = []
    for key, (family, stem) in zip(require_swap, unused):
        indices = [i for i, k in enumerate(keys) if k == key]
        swaps.append(FontSwap(indices, family, stem, fonts[indices[0]]))
    return swaps


def restore_swapped_fonts(text: str, swaps: Sequence[FontSwap], font_space: str = "") -> str:
    """Replace stand-in font names in the EPS with the original font names.

    The regular weight of the stand-in becomes the original name; other
    styles keep their suffix (``Times-Bold`` becomes ``MyFont-Bold``). Only
    font references (``/Name``) and DSC comment lines are touched, so label
    text that happens to contain a font name is kept.
    """
    for swap in swaps:
        name = swap.original
        if len(name) > MAX_FONT_NAME:
            logger.warning(
                "Font name '%s' is longer than %d characters. This might cause problems "
                "in some EPS/PDF readers. Consider using a different font.",
                name,
                MAX_FONT_NAME,
            )
        name = name.replace(" ", font_space[:1])

        def rename(match: re.Match, name: str = name) -> str:
            style = match.group(2) or ""
            suffix = "" if style in _REGULAR_STYLES else "-" + style
            return match.group(1) + name + suffix

        stem = re.escape(swap.stem) + r"(?!-Narrow)(?:-(\w+))?(?![\w-])"
        ref_re = re.compile(r"(/)" + stem)
        font_re = re.compile(r"(/|(?<![\w/-]))" + stem)
        text = ref_re.sub(rename, text)
        text = re.sub(
            r"(?m)^(%%.*)$",
            lambda m: font_re.sub(rename, m.group(1)),
            text,
        )
    return text


# =============================================================================
# Bounding box
# =============================================================================


def _last_box(pattern: re.Pattern, text: str) -> tuple[float, float, float, float] | None:
    matches = pattern.findall(text)
    if not matches:
        return None
    return tuple(float(v) for v in matches[-1])  # type: ignore[return-value]


def read_bounding_box(text: str) -> tuple[float, float, float, float] | None:
    """Return the (llx, lly, urx, ury) of the last %%BoundingBox comment."""
    return _last_box(_BBOX, text)


def read_page_bounding_box(text: str) -> tuple[float, float, float, float] | None:
    """Return the %%PageBoundingBox, or None when the file has none."""
    return _last_box(_PAGE_BBOX, text)


def adjust_bounding_box(
    text: str,
    bbox_rel: Sequence[float],
    padding: float = 0.0,
) -> str:
    """Shrink the EPS bounding box to the content found in a raster crop.

    Args:
        text: EPS file contents
        bbox_rel: (left, bottom, right, top) content box as fractions of the page
        padding: Padding in points, or a fraction of the box size if |padding| < 1

    Returns:
        EPS contents with rewritten %%BoundingBox (and %%HiResBoundingBox) lines
    """
    bb = read_bounding_box(text)
    if bb is None:
        logger.warning("No %%BoundingBox found, EPS file left uncropped")
        return text
    page = read_page_bounding_box(text) or bb

    page_w = page[2] - page[0]
    page_h = page[3] - page[1]
    bb_new = np.array(
        [
            page[0] + page_w * bbox_rel[0],
            page[1] + page_h * bbox_rel[1],
            page[0] + page_w * bbox_rel[2],
            page[1] + page_h * bbox_rel[3],
        ]
    )
    # 2pt margin so that cropping is not too tight
    offset = (bb_new - np.array(bb)) + np.array([-2, -2, 2, 2])

    if padding:
        if abs(padding) < 1:
            size = np.mean([bb_new[2] - bb_new[0], bb_new[3] - bb_new[1]])
            padding = round_half_away(size * padding / 0.5) * 0.5
        offset = offset + padding * np.array([-1, -1, 1, 1])

    final = np.array(bb) + offset

    def replace_bbox(match: re.Match) -> str:
        values = np.array([float(v) for v in match.groups()]) + offset
        return "%%BoundingBox:" + "".join(f" {v:.0f}" for v in values)

    def replace_hires(match: re.Match) -> str:
        return "%%HiResBoundingBox:" + "".join(f" {round(v):.6f}" for v in final)

    text = _BBOX.sub(replace_bbox, text)
    return _HIRES_BBOX.sub(replace_hires, text)


# =============================================================================
# Other patches
# =============================================================================


def _ps_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def add_bookmark(text: str, title: str) -> str:
    """Add a PDF outline entry (pdfmark) with the given title."""
    text = text.replace(
        "%%BeginProlog",
        "%%BeginProlog\n/pdfmark where {pop} {userdict /pdfmark /cleartomark load put} ifelse",
        1,
    )
    mark = f"[ /Title ({_ps_string(title)}) /OUT pdfmark"
    if "%%EndPageSetup" in text:
        return text.replace("%%EndPageSetup", f"%%EndPageSetup\n{mark}", 1)
    match = re.search(r"(?m)^%%Page:.*$", text)
    if match:
        return text[: match.end()] + "\n" + mark + text[match.end():]
    return text.replace("%%EndProlog", f"%%EndProlog\n{mark}", 1)


def prepend_page_size(text: str, width: float, height: float) -> str:
    """Fix the page size to the figure size (in points)."""
    return f"<< /PageSize [{width:.0f} {height:.0f}] >> setpagedevice\n{text}"


def rgb_to_cmyk_postscript(text: str) -> str:
    """Convert RGB and gray colour operators to CMYK."""

    def gray(match: re.Match) -> str:
        return f"0 0 0 {num_to_str(1 - float(match.group(1)))} setcmykcolor"

    def rgb(match: re.Match) -> str:
        values = np.array([float(v) for v in match.groups()])
        peak = values.max()
        if peak == 0:
            return "0 0 0 1 setcmykcolor"
        cmyk = list(1 - values / peak) + [1 - peak]
        return " ".join(f"{v:.4g}" for v in cmyk) + " setcmykcolor"

    text = _SETGRAY.sub(gray, text)
    return _SETRGB.sub(rgb, text)


def encode_alpha_color(index: int) -> tuple[float, float, float]:
    """Return a unique, opaque placeholder colour for translucent object number index."""
    return (101 / 255, (102 + index // 255) / 255, (index % 255) / 255)


def restore_alpha_colors(
    text: str, stored: Sequence[tuple[tuple[float, float, float], tuple[float, float, float, float]]]
) -> tuple[str, list[bool]]:
    """Turn placeholder colours back into the original colour with opacity.

    Args:
        text: EPS file contents
        stored: (placeholder rgb, original rgba) pairs, in encoding order

    Returns:
        Tuple of (patched text, per-entry flag telling whether it was found)
    """
    lookup = {
        tuple(round(v, 3) for v in placeholder): i for i, (placeholder, _) in enumerate(stored)
    }
    found = [False] * len(stored)

    def replace(match: re.Match) -> str:
        key = tuple(round(float(v), 3) for v in match.groups())
        index = lookup.get(key)
        if index is None:
            return match.group(0)
        found[index] = True
        r, g, b, a = stored[index][1]
        return f"{num_to_str(r)} {num_to_str(g)} {num_to_str(b)} setrgbcolor\n{num_to_str(a)} .setopacityalpha true"

    return _SETRGB.sub(replace, text), found


def strip_opacity(text: str) -> str:
    """Remove opacity operators that older Ghostscript versions reject."""
    return _OPACITY.sub("", text)


def apply_regexprep(text: str, pattern: str, replacement: str) -> str:
    """Apply a user-supplied regular expression replacement.

    ``$1`` style group references are accepted as well as ``\\1``.
    """
    replacement = re.sub(r"\$(\d+)", r"\\g<\1>", replacement)
    try:
        return re.sub(pattern, replacement, text)
    except re.error as e:
        logger.warning("Error parsing regexprep: %s", e)
        return text
