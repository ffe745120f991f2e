"""Export Matplotlib figures to cropped, publication-quality image files."""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy import to avoid loading cv2 and matplotlib for CLI subcommands that don't need them."""
    if name == "export_fig":
        from .export import export_fig
        return export_fig
    if name == "crop_borders":
        from .cropping import crop_borders
        return crop_borders
    if name in ("eps_to_pdf", "append_pdfs"):
        from .pdf import append_pdfs, eps_to_pdf
        return {"eps_to_pdf": eps_to_pdf, "append_pdfs": append_pdfs}[name]
    if name == "print_to_eps":
        from .eps import print_to_eps
        return print_to_eps
    if name == "print_to_array":
        from .raster import print_to_array
        return print_to_array
    if name in ("CropResult", "ExportOptions", "ExportResult", "Window"):
        from .models import CropResult, ExportOptions, ExportResult, Window
        return {
            "CropResult": CropResult,
            "ExportOptions": ExportOptions,
            "ExportResult": ExportResult,
            "Window": Window,
        }[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "export_fig",
    "crop_borders",
    "eps_to_pdf",
    "append_pdfs",
    "print_to_eps",
    "print_to_array",
    "CropResult",
    "ExportOptions",
    "ExportResult",
    "Window",
]
