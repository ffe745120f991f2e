import shutil

import matplotlib.pyplot as plt
import numpy as np
import pytest
from PIL import Image

from figexport.exceptions import InvalidPaddingError, NoFigureError
from figexport.export import export_fig, write_jpeg, write_png, write_tiff
from figexport.models import ExportOptions
from figexport.postscript import read_text_file


@pytest.fixture
def red_figure():
    fig, ax = plt.subplots(figsize=(2, 1.5), dpi=50)
    ax.plot([0, 1], [0, 1], color="red", linewidth=4)
    ax.set_axis_off()
    return fig


def test_png_is_cropped(figure, tmp_path):
    export_fig(str(tmp_path / "out.png"), fig=figure)
    with Image.open(tmp_path / "out.png") as img:
        assert img.width < 100
        assert img.height < 75
        assert img.info["dpi"][0] == pytest.approx(50, abs=0.1)


def test_nocrop_returns_full_image(figure, tmp_path):
    result = export_fig(str(tmp_path / "full"), "-png", "-nocrop", fig=figure, return_image=True)
    assert result.image.shape[:2] == (75, 100)
    assert result.alpha is None


def test_magnify(figure, tmp_path):
    result = export_fig(str(tmp_path / "big.png"), "-m2", "-nocrop", fig=figure, return_image=True)
    assert result.image.shape[:2] == (150, 200)


def test_black_and_white_figure_returns_single_channel(figure, tmp_path):
    result = export_fig(str(tmp_path / "bw.png"), fig=figure, return_image=True)
    assert result.image.ndim == 2


def test_gray(red_figure, tmp_path):
    result = export_fig(str(tmp_path / "g.png"), "-gray", fig=red_figure, return_image=True)
    assert result.image.ndim == 2


def test_return_alpha_without_transparency(red_figure, tmp_path):
    result = export_fig(str(tmp_path / "a.png"), fig=red_figure, return_alpha=True)
    assert result.image.shape[:2] == result.alpha.shape
    assert np.all(result.alpha == 1)


def test_transparent_png(red_figure, tmp_path):
    result = export_fig(
        str(tmp_path / "t.png"), "-transparent", fig=red_figure, return_alpha=True
    )
    alpha = result.alpha
    assert alpha.min() == 0
    assert alpha.max() == pytest.approx(1)
    assert result.image.shape[:2] == alpha.shape
    # Background corners are fully transparent
    assert alpha[0, 0] == 0
    with Image.open(tmp_path / "t.png") as img:
        assert img.mode == "RGBA"
        assert img.size == (alpha.shape[1], alpha.shape[0])


def test_other_formats(red_figure, tmp_path):
    export_fig(str(tmp_path / "f"), "-jpg", "-bmp", "-tif", fig=red_figure)
    for ext in ("jpg", "bmp", "tif"):
        assert (tmp_path / f"f.{ext}").exists()


def test_cmyk_tiff(red_figure, tmp_path):
    export_fig(str(tmp_path / "c.tif"), "-cmyk", fig=red_figure)
    with Image.open(tmp_path / "c.tif") as img:
        assert img.mode == "CMYK"


def test_append_tiff(red_figure, tmp_path):
    export_fig(str(tmp_path / "pages.tif"), fig=red_figure)
    export_fig(str(tmp_path / "pages.tif"), "-append", fig=red_figure)
    with Image.open(tmp_path / "pages.tif") as img:
        assert img.n_frames == 2


def test_axes_export(red_figure, tmp_path):
    ax = red_figure.axes[0]
    result = export_fig(str(tmp_path / "ax.png"), fig=ax, return_image=True)
    assert (tmp_path / "ax.png").exists()
    assert result.image.shape[0] <= 75


def test_current_figure_is_used(red_figure, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    export_fig()
    assert (tmp_path / "export_fig_out.png").exists()


def test_no_figure():
    plt.close("all")
    with pytest.raises(NoFigureError):
        export_fig("out.png")


def test_bitmap_padding_must_be_relative(figure, tmp_path):
    with pytest.raises(InvalidPaddingError):
        export_fig(str(tmp_path / "p.png"), "-p2", fig=figure)
    assert not (tmp_path / "p.png").exists()


def test_padding_grows_image(figure, tmp_path):
    plain = export_fig(str(tmp_path / "a.png"), fig=figure, return_image=True).image
    padded = export_fig(str(tmp_path / "b.png"), "-p0.2", fig=figure, return_image=True).image
    assert padded.shape[0] > plain.shape[0]
    assert padded.shape[1] > plain.shape[1]


def test_options_object(figure, tmp_path):
    options = ExportOptions(name=str(tmp_path / "opt"), bmp=True)
    export_fig(fig=figure, options=options)
    assert (tmp_path / "opt.bmp").exists()


def test_svg_output(figure, tmp_path):
    export_fig(str(tmp_path / "v.svg"), fig=figure)
    assert (tmp_path / "v.svg").read_text().lstrip().startswith("<?xml")


def test_writers(tmp_path):
    img = np.zeros((4, 5, 3), dtype=np.uint8)
    img[..., 0] = 200
    write_png(tmp_path / "w.png", img, 300, alpha=np.full((4, 5), 0.5))
    with Image.open(tmp_path / "w.png") as png:
        assert png.mode == "RGBA"
        assert png.getpixel((0, 0))[3] == 128
    write_jpeg(tmp_path / "w.jpg", img, quality=150)
    assert (tmp_path / "w.jpg").exists()
    write_tiff(tmp_path / "w.tif", img, 300, cmyk=True)
    with Image.open(tmp_path / "w.tif") as tif:
        assert tif.mode == "CMYK"
        assert tif.getpixel((0, 0)) == (0, 255, 255, 55)


@pytest.mark.skipif(shutil.which("gs") is None, reason="Ghostscript is not installed")
def test_pdf_output(figure, tmp_path):
    export_fig(str(tmp_path / "vec.pdf"), fig=figure)
    assert (tmp_path / "vec.pdf").read_bytes().startswith(b"%PDF")
    assert not list(tmp_path.glob("*.eps"))


@pytest.mark.skipif(shutil.which("gs") is None, reason="Ghostscript is not installed")
def test_pdf_append(figure, tmp_path):
    export_fig(str(tmp_path / "book.pdf"), fig=figure)
    size = (tmp_path / "book.pdf").stat().st_size
    export_fig(str(tmp_path / "book.pdf"), "-append", fig=figure)
    assert (tmp_path / "book.pdf").stat().st_size > size


def test_reused_options_are_not_modified(figure, tmp_path):
    options = ExportOptions(name=str(tmp_path / "unused"))
    export_fig(str(tmp_path / "first.png"), fig=figure, options=options)
    export_fig(str(tmp_path / "second.jpg"), fig=figure, options=options)
    assert (tmp_path / "second.jpg").exists()
    assert not (tmp_path / "second.png").exists()
    assert not options.png
    assert options.magnify is None
    assert options.aa_factor == 0


@pytest.fixture
def fake_converters(monkeypatch):
    """Replace Ghostscript and pdftops conversions with file writers that record their input."""
    from figexport import export

    calls = {"eps_to_pdf": [], "pdf_to_eps": []}

    def eps_to_pdf(source, dest, **kwargs):
        seed = dest.read_bytes() if dest.exists() else None
        calls["eps_to_pdf"].append(
            {"source": source, "dest": dest, "eps": read_text_file(source), "seed": seed, **kwargs}
        )
        dest.write_bytes(b"%PDF-1.4 converted")

    def pdf_to_eps(source, dest):
        calls["pdf_to_eps"].append({"source": source, "dest": dest})
        with open(dest, "w") as f:
            f.write("%!PS-Adobe-3.0 EPSF-3.0\n")

    monkeypatch.setattr(export, "eps_to_pdf", eps_to_pdf)
    monkeypatch.setattr(export, "pdf_to_eps", pdf_to_eps)
    return calls


def test_vector_output_without_ghostscript(figure, tmp_path, fake_converters):
    figure.set_label("Results")
    export_fig(str(tmp_path / "v"), "-pdf", "-eps", "-cmyk", "-bookmark", fig=figure)

    assert (tmp_path / "v.pdf").read_bytes() == b"%PDF-1.4 converted"
    assert (tmp_path / "v.eps").read_text().startswith("%!PS-Adobe")

    (conversion,) = fake_converters["eps_to_pdf"]
    assert "setcmykcolor" in conversion["eps"]
    assert "/Title (Results) /OUT pdfmark" in conversion["eps"]
    assert not conversion["append"]
    (back,) = fake_converters["pdf_to_eps"]
    assert back["source"] == tmp_path / "v.pdf"

    # Temp files are removed
    assert not conversion["source"].exists()
    assert not conversion["dest"].exists()
    assert not back["dest"].exists()


def test_vector_append_seeds_existing_pdf(figure, tmp_path, fake_converters):
    (tmp_path / "book.pdf").write_bytes(b"%PDF-1.4 old pages")
    export_fig(str(tmp_path / "book.pdf"), "-append", fig=figure)

    (conversion,) = fake_converters["eps_to_pdf"]
    assert conversion["append"]
    assert conversion["seed"] == b"%PDF-1.4 old pages"
    assert (tmp_path / "book.pdf").read_bytes() == b"%PDF-1.4 converted"
    assert not fake_converters["pdf_to_eps"]
