"""Export figures to bitmap and vector files."""

from __future__ import annotations

import logging
import shutil
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import cv2
import numpy as np

from .cropping import crop_borders
from .eps import print_to_eps
from .exceptions import (
    FigExportError,
    InvalidOptionError,
    InvalidPaddingError,
    NoFigureError,
)
from .external import IS_MAC
from .models import ExportOptions, ExportResult
from .pdf import eps_to_pdf, temp_path
from .pdftops import pdf_to_eps
from .postscript import add_bookmark, read_text_file, rgb_to_cmyk_postscript, write_text_file
from .raster import (
    check_greyscale,
    downsize,
    print_to_array,
    recover_alpha,
    rgb_to_cmyk,
    rgb_to_grey,
)
from .svg import print_to_svg

if TYPE_CHECKING:
    from matplotlib.axes import Axes
    from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 95

# Errors caused by the caller's input rather than the environment
_INPUT_ERRORS = (InvalidOptionError, InvalidPaddingError, NoFigureError)


# =============================================================================
# Writers
# =============================================================================


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGR)


def _imwrite(path: Path, image: np.ndarray, params: list[int] | None = None) -> None:
    if not cv2.imwrite(str(path), _to_bgr(image), params or []):
        raise FigExportError(
            f"Could not write {path}",
            f"Could not write {path}. Ensure that the destination folder is writable.",
        )


def write_png(path: str | Path, image: np.ndarray, dpi: float, alpha: np.ndarray | None = None) -> None:
    """Write a PNG with resolution metadata and an optional alpha matte (0-1)."""
    from PIL import Image

    data = image
    if alpha is not None:
        matte = np.round(np.clip(alpha, 0, 1) * 255).astype(np.uint8)
        data = np.dstack([image, matte])
    Image.fromarray(np.ascontiguousarray(data)).save(path, dpi=(dpi, dpi))


def write_bmp(path: str | Path, image: np.ndarray) -> None:
    _imwrite(Path(path), image)


def write_jpeg(path: str | Path, image: np.ndarray, quality: float | None = None) -> None:
    """Write a JPEG; quality defaults to 95 and is capped at 100."""
    if quality is None:
        quality = DEFAULT_JPEG_QUALITY
    quality = int(round(min(quality, 100)))
    _imwrite(Path(path), image, [cv2.IMWRITE_JPEG_QUALITY, quality])


def write_tiff(
    path: str | Path,
    image: np.ndarray,
    dpi: float,
    cmyk: bool = False,
    append: bool = False,
) -> None:
    """Write a TIFF, optionally converted to CMYK or added as a page to an existing file."""
    from PIL import Image, ImageSequence

    path = Path(path)
    if cmyk and image.ndim == 3 and image.shape[2] == 3:
        data = rgb_to_cmyk(image)
        page = Image.frombytes("CMYK", (data.shape[1], data.shape[0]), data.tobytes())
    else:
        page = Image.fromarray(np.ascontiguousarray(image))

    if append and path.exists():
        with Image.open(path) as existing:
            frames = [frame.copy() for frame in ImageSequence.Iterator(existing)]
        frames[0].save(path, save_all=True, append_images=frames[1:] + [page], dpi=(dpi, dpi))
    else:
        page.save(path, dpi=(dpi, dpi))


# =============================================================================
# Bitmap output
# =============================================================================


def _place_in_window(image: np.ndarray, crop, shape: tuple[int, int]) -> np.ndarray:
    """Apply an alpha-channel crop to the matching colour image."""
    if crop.destination is None:
        return image[crop.source.slices]
    canvas = np.zeros(shape + image.shape[2:], dtype=image.dtype)
    canvas[crop.destination.slices] = image[crop.source.slices]
    return canvas


def _export_bitmaps(
    fig: Figure, options: ExportOptions, bbox_inches: Any, result: ExportResult
) -> None:
    if abs(options.bb_padding) > 1:
        raise InvalidPaddingError(options.bb_padding)

    magnify = options.magnify * options.aa_factor
    dpi = options.magnify * fig.dpi
    png_written = False

    if options.transparent and (options.png or options.alpha):
        on_black, _ = print_to_array(fig, magnify, facecolor="black", bbox_inches=bbox_inches)
        on_white, _ = print_to_array(fig, magnify, facecolor="white", bbox_inches=bbox_inches)
        colour, alpha = recover_alpha(
            downsize(on_black, options.aa_factor), downsize(on_white, options.aa_factor)
        )
        if options.colourspace == "gray":
            colour = rgb_to_grey(colour)
        image = np.round(colour).astype(np.uint8)

        if options.crop:
            crop = crop_borders(alpha, 0, options.bb_padding, options.crop_amounts)
            alpha = crop.image
            image = _place_in_window(image, crop, alpha.shape)

        if options.png:
            write_png(options.output_path("png"), image, dpi, alpha=alpha)
            png_written = True

        image = check_greyscale(image)
        if options.alpha:
            result.image = image
            result.alpha = alpha

        # Remaining outputs get the colour composited on white
        matte = alpha if image.ndim == 2 else alpha[:, :, np.newaxis]
        image = np.round(image * matte + 255 * (1 - matte)).astype(np.uint8)
        if options.im:
            result.image = image
    else:
        facecolor = "white" if options.transparent else None
        image, background = print_to_array(fig, magnify, facecolor=facecolor, bbox_inches=bbox_inches)
        if options.transparent:
            background = 255
        if options.crop:
            image = crop_borders(image, background, options.bb_padding, options.crop_amounts).image
        image = downsize(image, options.aa_factor)
        image = rgb_to_grey(image) if options.colourspace == "gray" else check_greyscale(image)
        if options.im or options.alpha:
            result.image = image
        if options.alpha:
            result.alpha = np.ones(image.shape[:2], dtype=np.float32)

    if options.png and not png_written:
        write_png(options.output_path("png"), image, dpi)
    if options.bmp:
        write_bmp(options.output_path("bmp"), image)
    if options.jpg:
        write_jpeg(options.output_path("jpg"), image, options.quality)
    if options.tif:
        write_tiff(
            options.output_path("tif"),
            image,
            dpi,
            cmyk=options.colourspace == "cmyk",
            append=options.append,
        )


# =============================================================================
# Vector output
# =============================================================================


def _export_vectors(fig: Figure, options: ExportOptions, bbox_inches: Any) -> None:
    if options.svg:
        print_to_svg(options.output_path("svg"), fig, options, bbox_inches=bbox_inches)
    if not (options.pdf or options.eps):
        return

    folder = Path(options.name).parent
    tmp_eps = temp_path(".eps", folder)
    tmp_pdf = temp_path(".pdf", folder)
    tmp_eps2 = None
    # Ghostscript cannot write to names containing %, so convert into a temp file
    tmp_pdf.unlink()
    pdf_name = options.output_path("pdf") if options.pdf else tmp_pdf
    try:
        if options.pdf and options.append and pdf_name.exists():
            shutil.copyfile(pdf_name, tmp_pdf)

        print_to_eps(tmp_eps, fig, options, bbox_inches=bbox_inches)

        if options.colourspace == "cmyk" or options.bookmark:
            text = read_text_file(tmp_eps)
            if options.colourspace == "cmyk":
                text = rgb_to_cmyk_postscript(text)
            if options.bookmark:
                label = fig.get_label()
                if not label:
                    logger.warning("Bookmark requested for figure with no label. Bookmark will be empty.")
                text = add_bookmark(text, label)
            write_text_file(tmp_eps, text)

        eps_to_pdf(
            tmp_eps,
            tmp_pdf,
            crop=True,
            append=options.append,
            gray=options.colourspace == "gray",
            quality=options.quality,
            gs_options=options.gs_options,
        )
        if options.pdf:
            shutil.move(str(tmp_pdf), str(pdf_name))

        if options.eps:
            # pdftops cannot handle some relative paths, so go through a temp file
            tmp_eps2 = temp_path(".eps", folder)
            pdf_to_eps(pdf_name, tmp_eps2)
            shutil.move(str(tmp_eps2), str(options.output_path("eps")))
    finally:
        for path in (tmp_eps, tmp_pdf, tmp_eps2):
            if path is not None:
                path.unlink(missing_ok=True)


# =============================================================================
# Entry point
# =============================================================================


def _resolve_figure(fig: Figure | Axes | None) -> tuple[Figure, Any]:
    """Return (figure, bbox_inches) for a figure, an axes or the current figure."""
    from matplotlib.axes import Axes

    if fig is None:
        import matplotlib.pyplot as plt

        if not plt.get_fignums():
            raise NoFigureError()
        return plt.gcf(), None
    if isinstance(fig, Axes):
        figure = fig.figure
        bbox = fig.get_tightbbox().transformed(figure.dpi_scale_trans.inverted())
        return figure, bbox
    return fig, None


def _log_workarounds(options: ExportOptions) -> None:
    logger.error("Please ensure:")
    logger.error("  that you are using the latest version of figexport")
    if IS_MAC:
        logger.error("  and that you have Ghostscript installed (http://pages.uoregon.edu/koch)")
    else:
        logger.error("  and that you have Ghostscript installed (http://www.ghostscript.com)")
    if options.eps:
        logger.error("  and that you have pdftops installed (http://xpdfreader.com/download.html)")


def export_fig(
    name: str | None = None,
    *tokens: str,
    fig: Figure | Axes | None = None,
    options: ExportOptions | None = None,
    return_image: bool = False,
    return_alpha: bool = False,
) -> ExportResult:
    """Export a figure to one or more image files.

    Args:
        name: Output file name; a known extension selects the format.
            Option tokens such as ``-pdf`` may also be given here.
        *tokens: Further export_fig-style options, e.g. ``-png``, ``-m2``,
            ``-transparent``, ``-p0.05``, ``-c[10,nan,nan,10]``
        fig: Figure or Axes to export (default: current figure)
        options: Pre-built options, left unchanged; tokens are applied to a copy
        return_image: Return the bitmap in the result
        return_alpha: Return the bitmap and its alpha matte in the result

    Returns:
        ExportResult holding the image and alpha matte when requested

    Raises:
        NoFigureError: if no figure is given and none is open
        InvalidOptionError: if an option cannot be parsed
        InvalidPaddingError: if bitmap padding is outside -1..1
    """
    figure, bbox_inches = _resolve_figure(fig)

    all_tokens = ([name] if name else []) + list(tokens)
    if options is not None:
        # The caller's options may be reused for later exports
        options = replace(options, gs_options=list(options.gs_options))
    options = ExportOptions.parse(all_tokens, options)
    if return_image:
        options.im = True
    if return_alpha:
        options.alpha = True
    options.finalize(figure)
    logger.debug("Export options: %s", options)

    result = ExportResult()
    try:
        if options.is_bitmap:
            _export_bitmaps(figure, options, bbox_inches, result)
        if options.is_vector:
            _export_vectors(figure, options, bbox_inches)
    except _INPUT_ERRORS:
        raise
    except Exception:
        _log_workarounds(options)
        raise
    return result
