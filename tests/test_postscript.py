import logging

import pytest

from figexport.postscript import (
    FontSwap,
    add_bookmark,
    adjust_bounding_box,
    apply_regexprep,
    encode_alpha_color,
    num_to_str,
    plan_font_swap,
    prepend_page_size,
    read_bounding_box,
    read_text_file,
    restore_alpha_colors,
    restore_swapped_fonts,
    rgb_to_cmyk_postscript,
    strip_opacity,
    write_text_file,
)

EPS = (
    "%!PS-Adobe-3.0 EPSF-3.0\n"
    "%%BoundingBox: 0 0 200 100\n"
    "%%HiResBoundingBox: 0.000000 0.000000 200.000000 100.000000\n"
    "%%EndComments\n"
    "%%BeginProlog\n"
    "%%EndProlog\n"
    "%%Page: 1 1\n"
    "%%EndPageSetup\n"
    "showpage\n"
)


def test_text_file_round_trip_keeps_bytes(tmp_path):
    path = tmp_path / "a.eps"
    text = "line\r\n\xe9\n"
    write_text_file(path, text)
    assert read_text_file(path) == text


def test_num_to_str():
    assert num_to_str(0.5) == "0.5"
    assert num_to_str(1.0) == "1"
    assert num_to_str(101 / 255) == "0.396"


def test_plan_font_swap():
    swaps = plan_font_swap(["Helvetica", "Comic Sans MS", "Helvetica", "Arial"])
    assert swaps == [
        FontSwap([3], "Times", "Times", "Arial"),
        FontSwap([1], "Courier", "Courier", "Comic Sans MS"),
    ]


def test_plan_font_swap_standard_fonts_only():
    assert plan_font_swap(["Times New Roman", "Courier", "ITC Bookman"]) == []


def test_restore_swapped_fonts():
    text = (
        "%%DocumentNeededResources: font Times-Roman Times-Bold\n"
        "/Times-Roman findfont\n"
        "/Times-Bold findfont\n"
        "(Times-Roman label) show\n"
    )
    swap = FontSwap([0], "Times", "Times", "Comic Sans")
    out = restore_swapped_fonts(text, [swap], font_space="_")
    assert out.splitlines() == [
        "%%DocumentNeededResources: font Comic_Sans Comic_Sans-Bold",
        "/Comic_Sans findfont",
        "/Comic_Sans-Bold findfont",
        "(Times-Roman label) show",
    ]


def test_restore_swapped_fonts_skips_narrow():
    swap = FontSwap([0], "Helvetica", "Helvetica", "Arial")
    out = restore_swapped_fonts("/Helvetica-Narrow findfont\n/Helvetica findfont\n", [swap])
    assert out == "/Helvetica-Narrow findfont\n/Arial findfont\n"


def test_restore_swapped_fonts_warns_on_long_names(caplog):
    swap = FontSwap([0], "Times", "Times", "A" * 30)
    with caplog.at_level(logging.WARNING):
        restore_swapped_fonts("/Times-Roman findfont\n", [swap])
    assert "longer than 29 characters" in caplog.text


def test_read_bounding_box_uses_last():
    text = "%%BoundingBox: (atend)\n%%BoundingBox: 1 2 3 4\n%%BoundingBox: 5 6 7 8\n"
    assert read_bounding_box(text) == (5, 6, 7, 8)
    assert read_bounding_box("no box") is None


def test_adjust_bounding_box():
    out = adjust_bounding_box(EPS, (0.25, 0.2, 0.75, 0.8))
    assert "%%BoundingBox: 48 18 152 82\n" in out
    assert "%%HiResBoundingBox: 48.000000 18.000000 152.000000 82.000000\n" in out


@pytest.mark.parametrize(
    "padding, expected",
    [(4, (44, 14, 156, 86)), (0.1, (40, 10, 160, 90)), (-0.1, (56, 26, 144, 74))],
)
def test_adjust_bounding_box_padding(padding, expected):
    out = adjust_bounding_box(EPS, (0.25, 0.2, 0.75, 0.8), padding)
    assert read_bounding_box(out) == expected


def test_adjust_bounding_box_without_box():
    assert adjust_bounding_box("%!PS\n", (0.1, 0.1, 0.9, 0.9)) == "%!PS\n"


def test_add_bookmark():
    out = add_bookmark(EPS, "Fig (a)")
    assert "%%BeginProlog\n/pdfmark where" in out
    assert "%%EndPageSetup\n[ /Title (Fig \\(a\\)) /OUT pdfmark\n" in out


def test_add_bookmark_without_page_setup():
    text = EPS.replace("%%EndPageSetup\n", "")
    out = add_bookmark(text, "Fig")
    assert "%%Page: 1 1\n[ /Title (Fig) /OUT pdfmark\n" in out


def test_prepend_page_size():
    out = prepend_page_size("%!PS\n", 144.2, 108)
    assert out.startswith("<< /PageSize [144 108] >> setpagedevice\n%!PS")


def test_rgb_to_cmyk_postscript():
    text = "0.5 setgray\n1 0 0 setrgbcolor\n0 0 0 setrgbcolor\n"
    assert rgb_to_cmyk_postscript(text).splitlines() == [
        "0 0 0 0.5 setcmykcolor",
        "0 1 1 0 setcmykcolor",
        "0 0 0 1 setcmykcolor",
    ]


def test_encode_alpha_color_is_unique():
    assert encode_alpha_color(0) == (101 / 255, 102 / 255, 0)
    assert encode_alpha_color(256) == (101 / 255, 103 / 255, 1 / 255)
    colors = {encode_alpha_color(i) for i in range(600)}
    assert len(colors) == 600


def test_restore_alpha_colors():
    placeholder = encode_alpha_color(0)
    line = " ".join(num_to_str(v) for v in placeholder) + " setrgbcolor\n"
    text = line + "fill\n"
    stored = [(placeholder, (1.0, 0.0, 0.0, 0.5)), (encode_alpha_color(1), (0, 0, 1, 0.2))]
    out, found = restore_alpha_colors(text, stored)
    assert out == "1 0 0 setrgbcolor\n0.5 .setopacityalpha true\nfill\n"
    assert found == [True, False]


def test_strip_opacity():
    text = "1 0 0 setrgbcolor\n0.5 .setopacityalpha true\nfill\n"
    assert strip_opacity(text) == "1 0 0 setrgbcolor\nfill\n"


def test_apply_regexprep():
    assert apply_regexprep("abc", "(b)", "[$1]") == "a[b]c"


def test_apply_regexprep_invalid_pattern(caplog):
    assert apply_regexprep("abc", "(", "x") == "abc"
    assert "Error parsing regexprep" in caplog.text
