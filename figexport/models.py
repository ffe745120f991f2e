"""Data models for figure export."""

from __future__ import annotations

import json
import math
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Literal

import numpy as np

from .exceptions import InvalidOptionError, UnsupportedFormatError

if TYPE_CHECKING:
    from matplotlib.figure import Figure

Colourspace = Literal["rgb", "cmyk", "gray"]

DEFAULT_NAME = "export_fig_out"
DEFAULT_RESOLUTION = 864

BITMAP_FORMATS = ("png", "tif", "jpg", "bmp")
VECTOR_FORMATS = ("pdf", "eps", "svg")

_EXTENSIONS = {
    ".pdf": "pdf",
    ".eps": "eps",
    ".svg": "svg",
    ".png": "png",
    ".tif": "tif",
    ".tiff": "tif",
    ".jpg": "jpg",
    ".jpeg": "jpg",
    ".bmp": "bmp",
}

# Flags that take no value: token (without the dash) -> (attribute, value)
_FLAGS: dict[str, tuple[str, Any]] = {
    "nocrop": ("crop", False),
    "trans": ("transparent", True),
    "transparent": ("transparent", True),
    "pdf": ("pdf", True),
    "eps": ("eps", True),
    "svg": ("svg", True),
    "png": ("png", True),
    "tif": ("tif", True),
    "tiff": ("tif", True),
    "jpg": ("jpg", True),
    "jpeg": ("jpg", True),
    "bmp": ("bmp", True),
    "rgb": ("colourspace", "rgb"),
    "cmyk": ("colourspace", "cmyk"),
    "gray": ("colourspace", "gray"),
    "grey": ("colourspace", "gray"),
    "append": ("append", True),
    "bookmark": ("bookmark", True),
    "native": ("native", True),
    "nofontswap": ("fontswap", False),
    "preserve_size": ("preserve_size", True),
}

_NUMERIC_OPTION = re.compile(r"-([mrqp])(-?\d*\.?\d+)?", re.IGNORECASE)
_CROP_AMOUNTS_OPTION = re.compile(r"-c\[?([^\]]*)\]?", re.IGNORECASE)


@dataclass(frozen=True)
class Window:
    """Half-open pixel window (top, bottom, left, right) in 0-based coordinates."""

    top: int
    bottom: int
    left: int
    right: int

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def slices(self) -> tuple[slice, slice]:
        """Return (row, column) slices for indexing an image array."""
        return slice(self.top, self.bottom), slice(self.left, self.right)

    def as_tuple(self) -> tuple[int, int, int, int]:
        """Return window as (top, bottom, left, right) tuple."""
        return (self.top, self.bottom, self.left, self.right)


@dataclass
class CropResult:
    """Result of border cropping."""

    image: np.ndarray
    """Cropped (and possibly padded) image, same dimensionality as the input."""

    source: Window
    """Window in the input image that holds the kept content."""

    destination: Window | None
    """Where ``source`` is placed in ``image``; None unless padding was positive."""

    bbox_rel: tuple[float, float, float, float]
    """(left, bottom, right, top) as fractions of the input size, y axis up."""


@dataclass
class ExportResult:
    """Image data handed back by export_fig when requested."""

    image: np.ndarray | None = None
    alpha: np.ndarray | None = None


def _parse_float(value: str) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_crop_amounts(value: str) -> tuple[float, float, float, float]:
    """Parse crop amounts string into a (top, right, bottom, left) tuple.

    Supports formats:
        - "10"                 -> top only, other edges auto
        - "10,20,30,40"        -> top, right, bottom, left
        - "[10,nan,inf,5]"     -> NaN/inf mean auto-cropping

    Separators: , ; whitespace
    """
    parts = [p for p in re.split(r"[,;\s]+", value.strip("[] ")) if p]
    if not 1 <= len(parts) <= 4:
        raise ValueError(f"Invalid crop amounts: {value}")
    amounts = []
    for part in parts:
        number = _parse_float(part)
        if number is None:
            raise ValueError(f"Invalid crop amounts: {value}")
        amounts.append(number)
    amounts += [math.nan] * (4 - len(amounts))
    return tuple(amounts)  # type: ignore[return-value]


@dataclass
class ExportOptions:
    """All settings of a single export."""

    name: str = DEFAULT_NAME
    crop: bool = True
    transparent: bool = False
    pdf: bool = False
    eps: bool = False
    svg: bool = False
    png: bool = False
    tif: bool = False
    jpg: bool = False
    bmp: bool = False
    colourspace: Colourspace = "rgb"
    append: bool = False
    im: bool = False
    alpha: bool = False
    aa_factor: int = 0
    bb_padding: float = 0.0
    magnify: float | None = None
    resolution: float | None = None
    bookmark: bool = False
    quality: float | None = None
    fontswap: bool = True
    font_space: str = ""
    preserve_size: bool = False
    native: bool = False
    crop_amounts: tuple[float, float, float, float] = (math.nan, math.nan, math.nan, math.nan)
    gs_options: list[str] = field(default_factory=list)
    regexprep: tuple[str, str] | None = None

    @property
    def is_bitmap(self) -> bool:
        """Check if any bitmap output (file or returned array) is requested."""
        return self.png or self.tif or self.jpg or self.bmp or self.im or self.alpha

    @property
    def is_vector(self) -> bool:
        """Check if any vector output is requested."""
        return self.pdf or self.eps or self.svg

    @classmethod
    def parse(cls, tokens: Iterable[str], options: ExportOptions | None = None) -> ExportOptions:
        """Parse export_fig-style tokens into an ExportOptions object.

        Dash tokens are options; any other token is the output name, whose
        extension (if known) selects the output format.
        """
        options = options or cls()
        tokens = [str(t) for t in tokens]
        i = 0
        while i < len(tokens):
            token = tokens[i]
            i += 1
            if not token:
                continue
            if not token.startswith("-"):
                options._set_name(token)
                continue

            key = token[1:].lower()
            if key in _FLAGS:
                attr, value = _FLAGS[key]
                setattr(options, attr, value)
            elif key in ("a1", "a2", "a3", "a4"):
                options.aa_factor = int(key[1])
            elif key == "emf":
                raise UnsupportedFormatError("emf")
            elif key == "font_space":
                options.font_space = tokens[i][:1] if i < len(tokens) else ""
                i += 1
            elif key == "regexprep":
                if i + 1 >= len(tokens):
                    raise InvalidOptionError(token, "-regexprep requires two arguments: old new")
                options.regexprep = (tokens[i], tokens[i + 1])
                i += 2
            elif key.startswith("d"):
                options.gs_options.append("-d" + token[2:])
            elif key.startswith("c") and _CROP_AMOUNTS_OPTION.fullmatch(token):
                try:
                    options.crop_amounts = parse_crop_amounts(
                        _CROP_AMOUNTS_OPTION.fullmatch(token).group(1)
                    )
                except ValueError as e:
                    raise InvalidOptionError(token, str(e))
                options.crop = True
            else:
                i = options._parse_numeric(token, tokens, i)
        return options

    def _parse_numeric(self, token: str, tokens: list[str], i: int) -> int:
        match = _NUMERIC_OPTION.fullmatch(token)
        if not match:
            raise InvalidOptionError(token)
        value = _parse_float(match.group(2)) if match.group(2) else None
        if value is None and i < len(tokens):
            value = _parse_float(tokens[i])
            if value is not None:
                i += 1
        if value is None or math.isnan(value):
            raise InvalidOptionError(
                token, f"option {token} is not recognised or cannot be parsed"
            )

        letter = match.group(1).lower()
        if letter == "m":
            if value <= 0:
                raise InvalidOptionError(
                    token, f"Bad magnification value: {value:g} (must be positive)"
                )
            self.magnify = value
        elif letter == "r":
            self.resolution = value
        elif letter == "q":
            self.quality = max(value, 0)
        else:
            self.bb_padding = value
        return i

    def _set_name(self, value: str) -> None:
        path = Path(value)
        suffix = path.suffix.lower()
        if suffix == ".emf":
            raise UnsupportedFormatError("emf")
        fmt = _EXTENSIONS.get(suffix)
        if fmt is None:
            self.name = value
            return
        setattr(self, fmt, True)
        self.name = str(path.with_suffix(""))

    def finalize(self, fig: Figure) -> ExportOptions:
        """Fill in values derived from other options and from the figure."""
        from matplotlib.colors import to_rgba

        if self.bb_padding:
            self.crop = True

        if self.aa_factor == 0:
            # Agg already antialiases, so supersampling is opt-in (-a2..-a4)
            self.aa_factor = 1

        if len(self.name) > 2 and self.name[0] == "~" and self.name[1] in "/\\":
            self.name = str(Path.home() / self.name[2:])

        if self.magnify is None:
            if self.resolution is None:
                self.magnify = 1.0
                self.resolution = DEFAULT_RESOLUTION
            else:
                self.magnify = self.resolution / fig.dpi
        elif self.resolution is None:
            self.resolution = DEFAULT_RESOLUTION

        if not self.is_vector and not self.is_bitmap:
            self.png = True

        if to_rgba(fig.get_facecolor())[3] == 0:
            self.transparent = True

        if self.native and self.is_bitmap:
            from .raster import native_magnification

            magnify = native_magnification(fig)
            if magnify:
                self.magnify = magnify

        return self

    def output_path(self, fmt: str) -> Path:
        """Return the output file path for a format."""
        return Path(f"{self.name}.{fmt}")


@dataclass
class UserSettings:
    """Persisted locations of external tools and fonts."""

    ghostscript: str | None = None
    pdftops: str | None = None
    gs_font_path: str | None = None

    @classmethod
    def keys(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def validate(self) -> None:
        """Drop stored paths that point at files which no longer exist."""
        for key in ("ghostscript", "pdftops"):
            value = getattr(self, key)
            if value and ("/" in value or "\\" in value) and not Path(value).exists():
                setattr(self, key, None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserSettings:
        """Create UserSettings from dictionary, ignoring unknown keys."""
        settings = cls(**{k: data[k] for k in cls.keys() if k in data})
        settings.validate()
        return settings

    @classmethod
    def from_json(cls, json_str: str) -> UserSettings:
        """Parse UserSettings from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def from_file(cls, path: str | Path) -> UserSettings:
        """Load UserSettings from JSON file."""
        with open(path) as f:
            return cls.from_json(f.read())
