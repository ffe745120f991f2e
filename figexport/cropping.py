"""Border cropping for rendered figures and image stacks."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from .models import CropResult, Window

if TYPE_CHECKING:
    from .visualizer import DebugVisualizer

AUTO = math.nan


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _as_stack(image: np.ndarray) -> np.ndarray:
    """View a 2-D, 3-D or 4-D image as rows x cols x channels x frames."""
    if image.ndim == 2:
        return image[:, :, np.newaxis, np.newaxis]
    if image.ndim == 3:
        return image[:, :, :, np.newaxis]
    if image.ndim == 4:
        return image
    raise ValueError(f"Expected a 2-D, 3-D or 4-D image, got {image.ndim} dimensions")


def _from_stack(stack: np.ndarray, ndim: int) -> np.ndarray:
    if ndim == 2:
        return stack[:, :, 0, 0]
    if ndim == 3:
        return stack[:, :, :, 0]
    return stack


def _edge_backgrounds(
    stack: np.ndarray, background: float | Sequence[float] | np.ndarray | None
) -> dict[str, np.ndarray]:
    """Return the background colour used when scanning each edge.

    With no background (transparent figure), each edge uses the sample in the
    middle of that edge of the first frame.
    """
    h, w, c, _ = stack.shape
    if background is None:
        mid_row = (h - 1) // 2
        mid_col = (w - 1) // 2
        return {
            "left": stack[mid_row, 0, :, 0],
            "right": stack[mid_row, w - 1, :, 0],
            "top": stack[0, mid_col, :, 0],
            "bottom": stack[h - 1, mid_col, :, 0],
        }

    bcol = np.asarray(background, dtype=np.float64).ravel()
    if bcol.size == 1:
        bcol = np.repeat(bcol, c)
    elif bcol.size != c:
        raise ValueError(
            f"Background colour has {bcol.size} components but the image has {c} channels"
        )
    return {edge: bcol for edge in ("left", "right", "top", "bottom")}


def content_mask(stack: np.ndarray, bcol: np.ndarray) -> np.ndarray:
    """Return rows x cols mask of samples differing from bcol in any channel or frame."""
    c = stack.shape[2]
    return np.any(stack != np.asarray(bcol).reshape(1, 1, c, 1), axis=(2, 3))


def _explicit(amount: float) -> int | None:
    if math.isfinite(amount):
        return round_half_away(abs(amount))
    return None


def find_crop_lines(
    stack: np.ndarray,
    backgrounds: dict[str, np.ndarray],
    crop_amounts: Sequence[float],
) -> tuple[int, int, int, int, np.ndarray]:
    """Find inclusive crop lines (top, bottom, left, right) for an image stack.

    Edges with an explicit amount skip the scan. An auto edge that finds no
    content is left uncropped.

    Returns:
        Tuple of (top, bottom, left, right, mask) where mask is the content
        mask of the left-edge background (used for debug output).
    """
    h, w = stack.shape[:2]
    top_amount, right_amount, bottom_amount, left_amount = crop_amounts

    masks: dict[bytes, np.ndarray] = {}

    def mask_for(edge: str) -> np.ndarray:
        bcol = backgrounds[edge]
        key = np.asarray(bcol, dtype=np.float64).tobytes()
        if key not in masks:
            masks[key] = content_mask(stack, bcol)
        return masks[key]

    # Crop margin from left
    left = _explicit(left_amount)
    if left is None:
        cols = np.flatnonzero(mask_for("left").any(axis=0))
        left = int(cols[0]) if cols.size else 0
    left = min(left, w - 1)

    # Crop margin from right
    right = _explicit(right_amount)
    if right is None:
        cols = np.flatnonzero(mask_for("right")[:, left:].any(axis=0))
        right = left + int(cols[-1]) if cols.size else w - 1
    else:
        right = w - 1 - right
    right = min(max(right, left), w - 1)

    # Crop margin from top
    top = _explicit(top_amount)
    if top is None:
        rows = np.flatnonzero(mask_for("top").any(axis=1))
        top = int(rows[0]) if rows.size else 0
    top = min(top, h - 1)

    # Crop margin from bottom
    bottom = _explicit(bottom_amount)
    if bottom is None:
        rows = np.flatnonzero(mask_for("bottom")[top:, :].any(axis=1))
        bottom = top + int(rows[-1]) if rows.size else h - 1
    else:
        bottom = h - 1 - bottom
    bottom = min(max(bottom, top), h - 1)

    return top, bottom, left, right, mask_for("left")


def resolve_padding(padding: float, height: int, width: int) -> int:
    """Convert a padding value to a signed pixel count.

    Zero padding keeps a one-pixel border so that later resizing does not
    bleed content into the edge. A magnitude below 1 is relative to the mean
    of the cropped height and width.
    """
    if padding == 0:
        return 1
    if abs(padding) < 1:
        return round_half_away(math.copysign(np.mean([height, width]) * abs(padding), padding))
    return round_half_away(padding)


def crop_borders(
    image: np.ndarray,
    background: float | Sequence[float] | np.ndarray | None,
    padding: float = 0,
    crop_amounts: Sequence[float] | None = None,
    visualizer: DebugVisualizer | None = None,
) -> CropResult:
    """Crop the borders of an image or a stack of images.

    Args:
        image: HxW, HxWxC or HxWxCxN array of pixel samples
        background: Background colour (scalar or C-vector); None for a
            transparent background, in which case each edge is compared with
            the sample in the middle of that edge
        padding: Padding around the cropped content. |padding| < 1 is a
            fraction of the cropped size, otherwise a pixel count. Positive
            values add a background-coloured border, negative values crop
            further inward.
        crop_amounts: (top, right, bottom, left) pixel amounts; NaN or inf
            requests auto-detection for that edge
        visualizer: Optional debug visualizer

    Returns:
        CropResult with the cropped image, the source and destination
        windows, and the relative bounding box used for EPS cropping
    """
    image = np.asarray(image)
    stack = _as_stack(image)
    h, w, c, n = stack.shape
    if h == 0 or w == 0:
        raise ValueError("Cannot crop an empty image")

    amounts = list(crop_amounts) if crop_amounts is not None else []
    amounts = (amounts + [AUTO] * 4)[:4]

    backgrounds = _edge_backgrounds(stack, background)
    top, bottom, left, right, mask = find_crop_lines(stack, backgrounds, amounts)

    if visualizer:
        visualizer.save_input(stack[:, :, :, 0])
        visualizer.save_content_mask(mask, (top, bottom, left, right))
        visualizer.save_profiles(mask, (top, bottom, left, right))

    pad = resolve_padding(padding, bottom - top, right - left)

    if pad > 0:
        # Place the content on a background canvas with the padded size
        fill = backgrounds["bottom"]
        out = np.empty((bottom - top + 1 + 2 * pad, right - left + 1 + 2 * pad, c, n), dtype=stack.dtype)
        out[...] = np.asarray(fill).reshape(1, 1, c, 1).astype(stack.dtype)
        source = Window(top, bottom + 1, left, right + 1)
        destination = Window(pad, pad + bottom - top + 1, pad, pad + right - left + 1)
        out[destination.slices] = stack[source.slices]
    else:
        # Extra cropping, never past the middle of the content
        t, b = top - pad, bottom + pad
        if t > b:
            t = b = (top + bottom) // 2
        l, r = left - pad, right + pad
        if l > r:
            l = r = (left + right) // 2
        source = Window(t, b + 1, l, r + 1)
        destination = None
        out = stack[source.slices].copy()

    # Relative bounding box in PostScript orientation (origin bottom-left)
    bbox_rel = (
        left / w,
        (h - bottom - 2) / h,
        (right + 2) / w,
        (h - top) / h,
    )

    result = _from_stack(out, image.ndim)
    if visualizer:
        visualizer.save_result(result)

    return CropResult(result, source, destination, bbox_rel)
