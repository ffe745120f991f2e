"""Custom exceptions for figure export."""


class FigExportError(Exception):
    """Base exception for figure export errors."""

    def __init__(self, message: str, user_message: str | None = None):
        super().__init__(message)
        self.user_message = user_message or message


class NoFigureError(FigExportError):
    """No figure was given and none is open."""

    def __init__(self):
        super().__init__("No figure found")


class InvalidOptionError(FigExportError):
    """An export option was not recognised or could not be parsed."""

    def __init__(self, option: str, detail: str = ""):
        msg = detail or f"Unrecognized export option: '{option}'"
        super().__init__(msg)
        self.option = option


class UnsupportedFormatError(InvalidOptionError):
    """The requested output format cannot be produced."""

    def __init__(self, fmt: str):
        super().__init__(
            fmt,
            f"{fmt.upper()} output is not supported. "
            "Export to PDF/EPS/SVG or a bitmap format instead.",
        )


class InvalidPaddingError(FigExportError):
    """Bitmap padding outside of the relative range."""

    def __init__(self, padding: float):
        super().__init__(
            f"Invalid bitmap padding: {padding}",
            "For bitmap output (png,jpg,tif,bmp) the padding value (-p) must be between -1<p<1",
        )


class MissingFileError(FigExportError):
    """An input file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Input file {path} does not exist")
        self.path = path


class ImageReadError(FigExportError):
    """Failed to read input image."""

    def __init__(self, path: str):
        super().__init__(
            f"Could not read image: {path}",
            "Could not read image file. The file may be corrupted or in an unsupported format.",
        )


class ExternalToolError(FigExportError):
    """An external program (Ghostscript, pdftops) failed."""

    def __init__(self, tool: str, message: str, user_message: str | None = None):
        super().__init__(f"{tool} error: {message}", user_message)
        self.tool = tool
        self.output = message


class ToolNotFoundError(ExternalToolError):
    """An external program could not be located."""

    def __init__(self, tool: str, url: str):
        super().__init__(
            tool,
            f"{tool} not found",
            f"{tool} not found. Have you installed it from {url} ?",
        )
        self.url = url


class GhostscriptNotFoundError(ToolNotFoundError):
    """Ghostscript executable could not be located."""

    def __init__(self, url: str = "http://ghostscript.com"):
        super().__init__("Ghostscript", url)


class PdftopsNotFoundError(ToolNotFoundError):
    """pdftops executable could not be located."""

    def __init__(self, url: str = "http://xpdfreader.com/download.html"):
        super().__init__("pdftops", url)


class GhostscriptError(ExternalToolError):
    """Ghostscript returned an error while converting."""

    def __init__(self, message: str, options: list[str] | None = None, hints: list[str] | None = None):
        self.options = list(options or [])
        self.hints = list(hints or [])
        lines = [f"Ghostscript error: {message.strip()}"]
        lines += [f" * {hint}" for hint in self.hints]
        super().__init__("Ghostscript", message, "\n".join(lines))


class MissingFontError(GhostscriptError):
    """Ghostscript could not find a font used by the figure."""

    def __init__(self, fonts: str, settings_file: str = ""):
        hints = []
        if settings_file:
            hints.append(f"try to add the font's folder to gs_font_path in {settings_file}")
        super().__init__(f"could not find the following font(s): {fonts}", hints=hints)
        self.fonts = fonts


class PdfWriteError(FigExportError):
    """Ghostscript produced no output and no message."""

    def __init__(self, folder: str):
        super().__init__(
            f"Unable to generate pdf in {folder}",
            f"Unable to generate pdf. Ensure that the destination folder ({folder}) is writable.",
        )
