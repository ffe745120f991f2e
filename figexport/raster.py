"""Rendering figures to pixel arrays and bitmap post-processing."""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any

import cv2
import numpy as np

if TYPE_CHECKING:
    from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

# Renders above this many pixels often exhaust memory
LARGE_RENDER_PIXELS = 30e6

# ITU-R BT.601 luma weights
GREY_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def _background_from_facecolor(facecolor: Any, image: np.ndarray) -> np.ndarray | None:
    """Return the 0-255 background colour of a render, or None if transparent."""
    from matplotlib.colors import to_rgba

    rgba = to_rgba(facecolor)
    if rgba[3] == 0:
        return None
    rgb = np.array(rgba[:3]) * 255
    if np.allclose(rgb, np.round(rgb)):
        return np.round(rgb)
    # Non-integral colours are dithered/rounded by the renderer
    return image[0, 0, :].astype(np.float64)


def print_to_array(
    fig: Figure,
    magnify: float = 1.0,
    facecolor: Any = None,
    bbox_inches: Any = None,
) -> tuple[np.ndarray, np.ndarray | None]:
    """Render a figure to an RGB uint8 array through the Agg renderer.

    Args:
        fig: Figure to render
        magnify: Scale factor relative to the figure's dpi
        facecolor: Background colour for this render (default: figure facecolour)
        bbox_inches: Passed to savefig, e.g. a Bbox to render part of the figure

    Returns:
        Tuple of (image, background) where image is HxWx3 uint8 and
        background is the 0-255 RGB background colour, or None when the
        figure background is transparent
    """
    dpi = fig.dpi * magnify
    if facecolor is None:
        facecolor = fig.get_facecolor()

    width, height = fig.get_size_inches() * dpi
    if width * height > LARGE_RENDER_PIXELS:
        logger.warning(
            "Rendering a %dx%d image; this may run out of memory. "
            "Consider reducing the magnification or resolution.",
            round(width),
            round(height),
        )

    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, facecolor=facecolor, bbox_inches=bbox_inches)
    data = np.frombuffer(buf.getvalue(), dtype=np.uint8)
    img = cv2.imdecode(data, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise RuntimeError("Failed to decode rendered figure")

    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    elif img.shape[2] == 4:
        # Composite on white; transparent areas become the page colour
        rgba = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA).astype(np.float32)
        alpha = rgba[:, :, 3:] / 255
        img = np.round(rgba[:, :, :3] * alpha + 255 * (1 - alpha)).astype(np.uint8)
    else:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    return img, _background_from_facecolor(facecolor, img)


def recover_alpha(on_black: np.ndarray, on_white: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Recover colour and alpha from renders on black and on white backgrounds.

    A pixel of colour c and opacity a renders as a*c on black and
    a*c + (1-a)*255 on white, so the difference gives the opacity.

    Args:
        on_black: HxWx3 render with a black background
        on_white: HxWx3 render with a white background

    Returns:
        Tuple of (colour, alpha): colour is HxWx3 float32 in 0-255 and alpha
        is HxW float32 in 0-1
    """
    black = on_black.astype(np.float32)
    white = on_white.astype(np.float32)
    alpha = np.round((black - white).sum(axis=2)) / (255 * 3) + 1
    alpha = np.clip(alpha, 0, 1).astype(np.float32)
    divisor = np.where(alpha == 0, 1, alpha)
    colour = black / divisor[:, :, np.newaxis]
    return np.clip(colour, 0, 255), alpha


def downsize(image: np.ndarray, factor: int) -> np.ndarray:
    """Downsample an image by an integer anti-aliasing factor."""
    if factor == 1:
        return image
    h, w = image.shape[:2]
    size = (max(1, round(w / factor)), max(1, round(h / factor)))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def rgb_to_grey(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image to a single luma channel, keeping the dtype."""
    if image.ndim != 3 or image.shape[2] != 3:
        return image
    grey = image.astype(np.float32) @ GREY_WEIGHTS
    if np.issubdtype(image.dtype, np.integer):
        grey = np.round(grey)
    return grey.astype(image.dtype)


def check_greyscale(image: np.ndarray) -> np.ndarray:
    """Return a single channel when all three channels are identical."""
    if (
        image.ndim == 3
        and image.shape[2] == 3
        and np.array_equal(image[:, :, 0], image[:, :, 1])
        and np.array_equal(image[:, :, 1], image[:, :, 2])
    ):
        return image[:, :, 0]
    return image


def rgb_to_cmyk(image: np.ndarray) -> np.ndarray:
    """Convert an RGB uint8 image to CMYK uint8."""
    inv = 255 - image.astype(np.float64)
    k = inv.min(axis=2)
    scale = 255 / np.maximum(255 - k, 1)
    cmy = (inv - k[:, :, np.newaxis]) * scale[:, :, np.newaxis]
    return np.dstack([cmy, k]).round().astype(np.uint8)


def native_magnification(fig: Figure) -> float | None:
    """Magnification at which the first image in the figure renders at native resolution.

    An image with gid ``export_fig_native`` takes precedence over other
    visible images. Returns None when the figure has no suitable image.
    """
    from matplotlib.image import AxesImage

    images = [im for im in fig.findobj(AxesImage) if im.get_visible()]
    tagged = [im for im in images if im.get_gid() == "export_fig_native"]
    for im in tagged or images:
        data = im.get_array()
        ax = im.axes
        if data is None or ax is None:
            continue
        rows = data.shape[0]
        _, _, bottom, top = im.get_extent()
        ylim = ax.get_ylim()
        axes_height = ax.get_window_extent().height
        if rows == 0 or top == bottom or axes_height == 0:
            continue
        return abs(rows * (ylim[1] - ylim[0]) / (axes_height * (top - bottom)))
    return None
