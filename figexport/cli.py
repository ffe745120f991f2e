"""Command-line interface for figure export."""

import argparse
import logging
import sys
from pathlib import Path

DEFAULT_DELIM = "_"


def write_error(output_path: str | None, message: str) -> None:
    """Write error message to an error file next to the requested output."""
    if output_path:
        error_path = output_path + ".err"
        with open(error_path, "w") as f:
            f.write(message)


def detect_delim(filename: str) -> str | None:
    """Detect delimiter from filename by finding most common separator."""
    stem = Path(filename).stem
    for delim in ["_", "-", "."]:
        if delim in stem:
            return delim
    return None


def build_output_filename(input_path: str, prefix: str, suffix: str, delim: str) -> str:
    p = Path(input_path)
    parts = []
    if prefix:
        parts.append(prefix)
    parts.append(p.stem)
    if suffix:
        parts.append(suffix)
    return str(p.with_stem(delim.join(parts)))


def parse_background(value: str | None) -> list[float] | None:
    """Parse a background colour given as one value or comma separated R,G,B values."""
    if not value:
        return None
    try:
        return [float(v) for v in value.replace(";", ",").split(",") if v.strip()]
    except ValueError:
        raise ValueError(f"Invalid --background: {value}")


def add_crop_arguments(parser: argparse.ArgumentParser) -> None:
    """Add border cropping arguments to a parser."""
    parser.add_argument("input", help="Input image file")
    parser.add_argument("-o", "--output", help="Output filename")
    parser.add_argument("--prefix", default="", help="Prefix for output filename")
    parser.add_argument("--suffix", default="crop", help="Suffix for output filename")
    parser.add_argument(
        "--delim",
        help="Delimiter between prefix/name/suffix (auto-detected from filename if not set)",
    )
    parser.add_argument(
        "--default-delim",
        default=DEFAULT_DELIM,
        help=f"Default delimiter if not detected (default: '{DEFAULT_DELIM}')",
    )
    parser.add_argument(
        "-p",
        "--padding",
        type=float,
        default=0.0,
        help="Padding around the content: fraction of the size if below 1, else pixels. "
        "Negative values crop further inward (default: 0)",
    )
    parser.add_argument(
        "-c",
        "--crop-amounts",
        help="Fixed crop amounts in pixels as top,right,bottom,left; nan means auto, e.g. 10,nan,nan,5",
    )
    parser.add_argument(
        "--background",
        help="Background colour as a value or R,G,B (0-255). Default: sampled at each edge",
    )
    parser.add_argument(
        "--debug-dir",
        help="Directory to save debug visualization images",
    )
    parser.add_argument(
        "--coords",
        action="store_true",
        help="Output the content box (0.0-1.0, y up) and source window instead of the cropped image",
    )


def run_crop(args: argparse.Namespace) -> None:
    """Crop the borders of an image file."""
    import cv2

    from .cropping import crop_borders
    from .exceptions import FigExportError, ImageReadError
    from .models import parse_crop_amounts

    error_output = args.output if args.output else None

    img = cv2.imread(args.input, cv2.IMREAD_UNCHANGED)
    if img is None:
        err = ImageReadError(args.input)
        write_error(error_output, err.user_message)
        sys.exit(err.user_message)

    try:
        background = parse_background(args.background)
        crop_amounts = parse_crop_amounts(args.crop_amounts) if args.crop_amounts else None
    except ValueError as e:
        write_error(error_output, str(e))
        sys.exit(str(e))

    # Images are loaded as BGR(A); crop in RGB(A) like rendered figures
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)

    visualizer = None
    if args.debug_dir:
        from .visualizer import DebugVisualizer

        visualizer = DebugVisualizer(args.debug_dir)

    try:
        result = crop_borders(img, background, args.padding, crop_amounts, visualizer=visualizer)
    except (FigExportError, ValueError) as e:
        msg = getattr(e, "user_message", str(e))
        write_error(error_output, msg)
        sys.exit(msg)

    if args.coords:
        left, bottom, right, top = result.bbox_rel
        top_px, bottom_px, left_px, right_px = result.source.as_tuple()
        output = f"{left}\n{bottom}\n{right}\n{top}\n{top_px} {bottom_px} {left_px} {right_px}"
        if args.output:
            with open(args.output, "w") as f:
                f.write(output + "\n")
        else:
            print(output)
        return

    if args.output:
        output_path = args.output
    else:
        delim = args.delim or detect_delim(args.input) or args.default_delim
        output_path = build_output_filename(args.input, args.prefix, args.suffix, delim)

    cropped = result.image
    if cropped.ndim == 3 and cropped.shape[2] == 3:
        cropped = cv2.cvtColor(cropped, cv2.COLOR_RGB2BGR)
    elif cropped.ndim == 3 and cropped.shape[2] == 4:
        cropped = cv2.cvtColor(cropped, cv2.COLOR_RGBA2BGRA)
    if not cv2.imwrite(output_path, cropped):
        msg = f"Could not write {output_path}"
        write_error(error_output, msg)
        sys.exit(msg)


def run_export(args: argparse.Namespace) -> None:
    """Export a pickled figure."""
    import pickle

    import matplotlib

    matplotlib.use("Agg")

    from .exceptions import FigExportError, MissingFileError
    from .export import export_fig
    from .models import DEFAULT_NAME, ExportOptions

    path = Path(args.figure)
    if not path.exists():
        sys.exit(MissingFileError(str(path)).user_message)
    try:
        with open(path, "rb") as f:
            fig = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
        sys.exit(f"Could not load figure from {path}: {e}")

    from matplotlib.figure import Figure

    if not isinstance(fig, Figure):
        sys.exit(f"{path} does not contain a Matplotlib figure")

    try:
        options = ExportOptions.parse(args.tokens)
        # Name the output after the figure file unless a name was given
        if options.name == DEFAULT_NAME:
            options.name = str(path.with_suffix(""))
        export_fig(fig=fig, options=options)
    except FigExportError as e:
        sys.exit(e.user_message)


def run_eps2pdf(args: argparse.Namespace) -> None:
    """Convert an EPS file to PDF."""
    from .exceptions import FigExportError
    from .pdf import eps_to_pdf

    try:
        eps_to_pdf(
            args.source,
            args.dest,
            crop=not args.nocrop,
            append=args.append,
            gray=args.gray,
            quality=args.quality,
            gs_options=args.gs_option,
        )
    except FigExportError as e:
        sys.exit(e.user_message)


def run_pdf2eps(args: argparse.Namespace) -> None:
    """Convert a PDF file to EPS."""
    from .exceptions import FigExportError
    from .pdftops import pdf_to_eps

    try:
        pdf_to_eps(args.source, args.dest)
    except FigExportError as e:
        sys.exit(e.user_message)


def run_append(args: argparse.Namespace) -> None:
    """Append PDF files."""
    from .exceptions import FigExportError
    from .pdf import append_pdfs

    try:
        append_pdfs(args.output, *args.inputs)
    except FigExportError as e:
        sys.exit(e.user_message)


def run_config_show(args: argparse.Namespace) -> None:
    """Print the stored settings."""
    from .settings import describe

    print(describe())


def run_config_set(args: argparse.Namespace) -> None:
    """Store a setting."""
    from .models import UserSettings
    from .settings import update_setting

    if args.key not in UserSettings.keys():
        sys.exit(f"Unknown setting '{args.key}'. Valid settings: {', '.join(UserSettings.keys())}")
    if not update_setting(args.key, args.value or None):
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Export Matplotlib figures to cropped, publication-quality files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  figexport export fig.pickle out.pdf -transparent   Export a pickled figure
  figexport export fig.pickle out -png -m2 -p0.02    Bitmap at 2x with padding
  figexport crop scan.png -p 10                      Crop the borders of an image
  figexport eps2pdf plot.eps plot.pdf --append       Add a page to a PDF
  figexport append all.pdf page1.pdf page2.pdf       Join PDF files
  figexport config set ghostscript /opt/gs/bin/gs    Store the Ghostscript path
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # export subcommand
    export_parser = subparsers.add_parser("export", help="Export a pickled Matplotlib figure")
    export_parser.add_argument("figure", help="Pickled figure file")
    export_parser.add_argument(
        "tokens",
        nargs=argparse.REMAINDER,
        help="Output name and export_fig options, e.g. out.pdf -transparent -m2",
    )
    export_parser.set_defaults(func=run_export)

    # crop subcommand
    crop_parser = subparsers.add_parser("crop", help="Crop the borders of an image")
    add_crop_arguments(crop_parser)
    crop_parser.set_defaults(func=run_crop)

    # eps2pdf subcommand
    eps2pdf_parser = subparsers.add_parser("eps2pdf", help="Convert EPS to PDF with Ghostscript")
    eps2pdf_parser.add_argument("source", help="Source EPS file")
    eps2pdf_parser.add_argument("dest", help="Destination PDF file")
    eps2pdf_parser.add_argument("--nocrop", action="store_true", help="Keep the full page")
    eps2pdf_parser.add_argument("--append", action="store_true", help="Append to an existing PDF")
    eps2pdf_parser.add_argument("--gray", action="store_true", help="Convert to grayscale")
    eps2pdf_parser.add_argument(
        "-q", "--quality", type=float, help="Image quality 0-100, lossless above 100"
    )
    eps2pdf_parser.add_argument(
        "--gs-option",
        action="append",
        default=[],
        help="Extra Ghostscript option (repeatable), e.g. --gs-option=-dNoOutputFonts",
    )
    eps2pdf_parser.set_defaults(func=run_eps2pdf)

    # pdf2eps subcommand
    pdf2eps_parser = subparsers.add_parser("pdf2eps", help="Convert PDF to EPS with pdftops")
    pdf2eps_parser.add_argument("source", help="Source PDF file")
    pdf2eps_parser.add_argument("dest", help="Destination EPS file")
    pdf2eps_parser.set_defaults(func=run_pdf2eps)

    # append subcommand
    append_parser = subparsers.add_parser("append", help="Append PDF files")
    append_parser.add_argument("output", help="Output PDF (pages are added if it exists)")
    append_parser.add_argument("inputs", nargs="+", help="PDF files to append")
    append_parser.set_defaults(func=run_append)

    # config subcommand
    config_parser = subparsers.add_parser("config", help="Show or change stored settings")
    config_subparsers = config_parser.add_subparsers(dest="action")
    show_parser = config_subparsers.add_parser("show", help="Print the stored settings")
    show_parser.set_defaults(func=run_config_show)
    set_parser = config_subparsers.add_parser("set", help="Store a setting")
    set_parser.add_argument("key", help="ghostscript, pdftops or gs_font_path")
    set_parser.add_argument("value", nargs="?", default="", help="New value (empty to clear)")
    set_parser.set_defaults(func=run_config_set)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    elif hasattr(args, "func"):
        args.func(args)
    else:
        # Subcommand without action (e.g., "config" without "show")
        if args.command == "config":
            config_parser.print_help()
        else:
            parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
