"""EPS to PDF conversion and PDF concatenation with Ghostscript."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Sequence

from .exceptions import GhostscriptError, MissingFileError, MissingFontError, PdfWriteError
from .ghostscript import find_ghostscript, ghostscript, gs_version
from .postscript import read_text_file, strip_opacity, write_text_file
from .settings import font_path, settings_path

logger = logging.getLogger(__name__)

PDFWRITE_OPTIONS = [
    "-q",
    "-dNOPAUSE",
    "-dBATCH",
    "-sDEVICE=pdfwrite",
    "-dPDFSETTINGS=/prepress",
]

# An appended PDF smaller than this many extra bytes lost the new page
MIN_APPEND_GROWTH = 100


def temp_path(suffix: str, fallback_dir: str | Path = ".") -> Path:
    """Return the path of a new, empty temporary file.

    Falls back to fallback_dir when the system temp folder is not writable.
    """
    try:
        fd, name = tempfile.mkstemp(suffix=suffix)
    except OSError:
        fd, name = tempfile.mkstemp(suffix=suffix, dir=fallback_dir or ".")
    os.close(fd)
    return Path(name)


def _remove(path: Path | None) -> None:
    if path is not None:
        path.unlink(missing_ok=True)


def quality_options(quality: float | None) -> list[str]:
    """Ghostscript options for image compression at the given quality.

    Returns an empty list when quality is None. Above 100 images are
    compressed losslessly, otherwise with JPEG at the given quality.
    """
    if quality is None:
        return []
    options = ["-dAutoFilterColorImages=false", "-dAutoFilterGrayImages=false"]
    if quality > 100:
        options += [
            "-dColorImageFilter=/FlateEncode",
            "-dGrayImageFilter=/FlateEncode",
            "-c",
            ".setpdfwrite << /ColorImageDownsampleThreshold 10 "
            "/GrayImageDownsampleThreshold 10 >> setdistillerparams",
        ]
    else:
        v = 2 if quality < 80 else 1
        qfactor = 1 - quality / 100
        params = f"<< /QFactor {qfactor:.2f} /Blend 1 /HSample [{v} 1 1 {v}] /VSample [{v} 1 1 {v}] >>"
        options += [
            "-dColorImageFilter=/DCTEncode",
            "-dGrayImageFilter=/DCTEncode",
            "-c",
            f".setpdfwrite << /ColorImageDict {params} /GrayImageDict {params} >> setdistillerparams",
        ]
    return options


def _as_list(gs_options: str | Sequence[str] | None) -> list[str]:
    if not gs_options:
        return []
    if isinstance(gs_options, str):
        return gs_options.split()
    return [str(o) for o in gs_options]


def _error_hints(dest: Path, gs_options: list[str]) -> list[str]:
    hints = [f"perhaps {dest} is open by another application"]
    if gs_options:
        version = gs_version()
        version = f" {version}" if version else ""
        hints.append(
            f'or maybe your Ghostscript version{version} does not accept the extra '
            f'"{" ".join(gs_options)}" option(s) that you requested'
        )
    hints.append("or maybe you have another gs executable in your system's path")
    return hints


def _missing_fonts(message: str) -> str:
    match = re.search(r"Operand stack:\s*(.*?)\s*Execution", message, re.DOTALL)
    return match.group(1).strip() if match else ""


def eps_to_pdf(
    source: str | Path,
    dest: str | Path,
    crop: bool = True,
    append: bool = False,
    gray: bool = False,
    quality: float | None = None,
    gs_options: str | Sequence[str] | None = None,
) -> None:
    """Convert an EPS file to PDF using Ghostscript.

    Args:
        source: EPS file to convert
        dest: Output PDF file
        crop: Crop the page to the EPS bounding box
        append: Add the page to dest if it already exists
        gray: Convert to grayscale
        quality: Image compression quality (0-100), lossless above 100,
            Ghostscript defaults when None
        gs_options: Extra Ghostscript options, as a list or a space separated string

    Raises:
        PdfWriteError: if Ghostscript produced neither output nor a message
        MissingFontError: if Ghostscript could not find a font
        GhostscriptError: on any other Ghostscript failure
    """
    source = Path(source)
    dest = Path(dest)
    extra = _as_list(gs_options)

    options = PDFWRITE_OPTIONS + [f"-sOutputFile={dest}"]
    if crop:
        options.append("-dEPSCrop")
    fp = font_path()
    font_option = f"-sFONTPATH={fp}" if fp else None
    if font_option:
        options.append(font_option)
    if gray:
        options += ["-sColorConversionStrategy=Gray", "-dProcessColorModel=/DeviceGray"]
    # -c consumes arguments up to -f, so PostScript quality settings go last
    options += extra
    quality_opts = quality_options(quality)
    options += quality_opts

    previous = new_page = None
    try:
        if append and dest.exists():
            orig_bytes = dest.stat().st_size
            previous = temp_path(".pdf", dest.parent)
            shutil.copyfile(dest, previous)
            ghostscript(options + ["-f", str(source)])
            new_page = temp_path(".pdf", dest.parent)
            shutil.copyfile(dest, new_page)
            args = options + ["-f", str(previous), str(new_page)]
            status, message = ghostscript(args)
            if message and dest.stat().st_size < orig_bytes + MIN_APPEND_GROWTH:
                # Merging the interim PDF failed; append the EPS directly
                args = options + ["-f", str(previous), str(source)]
                status, message = ghostscript(args)
        else:
            args = options + ["-f", str(source)]
            status, message = ghostscript(args)

        if status:
            _recover(source, dest, args, message, font_option, quality_opts, extra)
    finally:
        _remove(previous)
        _remove(new_page)


def _recover(
    source: Path,
    dest: Path,
    args: list[str],
    message: str,
    font_option: str | None,
    quality_opts: list[str],
    extra: list[str],
) -> None:
    """Retry a failed conversion without the features old Ghostscript versions reject."""
    if re.search(r"undefined in \.setopacityalpha", message, re.IGNORECASE):
        retry = ["-dNOSAFER", "-dALLOWPSTRANSPARENCY"] + args
        status, message = ghostscript(retry)
        if not status:
            return
        if not re.search(r"undefined in \.setopacityalpha", message, re.IGNORECASE):
            args = retry
        else:
            write_text_file(source, strip_opacity(read_text_file(source)))
            status, message = ghostscript(args)
            if not status:
                logger.warning(
                    "Face/Edge alpha transparency is ignored - not supported by your Ghostscript version"
                )
                return

    orig_args = args
    if font_option:
        status, message = ghostscript([a for a in orig_args if a != font_option])
        if not status:
            logger.warning("Font path option is ignored - not supported by your Ghostscript version")
            return

    if quality_opts:
        status, message = ghostscript([a for a in orig_args if a not in quality_opts])
        if not status:
            logger.warning("Quality option is ignored - not supported by your Ghostscript version")
            return

    if not message:
        raise PdfWriteError(str(dest.parent.resolve()))
    if "/typecheck in /findfont" in message:
        raise MissingFontError(_missing_fonts(message), str(settings_path()))

    first = re.match(r"Error: /([^\n]+)", message)
    logger.error("Ghostscript path: %s", find_ghostscript())
    logger.error("Ghostscript options: %s", " ".join(orig_args))
    raise GhostscriptError(
        first.group(1) if first else message,
        options=orig_args,
        hints=_error_hints(dest, extra),
    )


def _arg_file_text(output: str | Path, inputs: Sequence[str | Path]) -> str:
    """Build the Ghostscript argument file contents for merging PDFs."""
    paths = [str(p).replace('"', "") for p in inputs]
    output = str(output)
    if os.sep == "\\":
        output = output.replace("\\", "/")
        paths = [p.replace("\\", "/") for p in paths]

    text = " ".join(PDFWRITE_OPTIONS) + f' -sOutputFile="{output}" -f '
    text += "".join(f'"{p}" ' for p in paths)
    # Drop empty names, then quotes that are not needed
    text = re.sub(r' "?" ', " ", text)
    text = re.sub(r'"([^ ]*)"', r"\1", text)
    return text.strip()


def _resolve_input(name: str | Path) -> Path:
    path = Path(name)
    if path.suffix and path.exists():
        return path
    with_ext = Path(f"{name}.pdf")
    if with_ext.exists():
        return with_ext
    if path.exists():
        return path
    raise MissingFileError(str(name))


def append_pdfs(output: str | Path, *inputs: str | Path) -> None:
    """Append PDF files into a single output PDF.

    If output exists, the inputs are added after its pages. Input names
    without an extension get ``.pdf`` appended.

    Raises:
        MissingFileError: if an input file does not exist
        GhostscriptError: if Ghostscript fails
    """
    output = Path(output)
    inputs = tuple(str(i).strip() for i in inputs if str(i).strip())
    if not inputs:
        return

    append = output.exists()
    if not append and len(inputs) == 1:
        shutil.copyfile(_resolve_input(inputs[0]), output)
        return

    files = [_resolve_input(i) for i in inputs]
    if append:
        target = temp_path(".pdf", output.parent)
        files = [output] + files
    else:
        target = output

    cmd_file = temp_path(".txt", output.parent)
    try:
        cmd_file.write_text(_arg_file_text(target, files))
        status, message = ghostscript([f"@{cmd_file}"])
        if status:
            logger.error("Ghostscript arguments: %s", cmd_file.read_text())
            raise GhostscriptError(message)
        if append:
            shutil.move(str(target), str(output))
    finally:
        _remove(cmd_file)
        if append:
            _remove(target)
