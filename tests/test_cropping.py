import math

import numpy as np
import pytest

from figexport.cropping import crop_borders, resolve_padding, round_half_away
from figexport.models import Window


def block_image():
    """White 10x12 RGB image with a black block in rows 3-5, columns 4-7."""
    img = np.full((10, 12, 3), 255, dtype=np.uint8)
    img[3:6, 4:8] = 0
    return img


def test_round_half_away():
    assert round_half_away(0.5) == 1
    assert round_half_away(1.5) == 2
    assert round_half_away(-0.5) == -1
    assert round_half_away(2.4) == 2


def test_resolve_padding():
    assert resolve_padding(0, 10, 20) == 1
    assert resolve_padding(0.1, 10, 20) == 2
    assert resolve_padding(-0.1, 10, 20) == -2
    assert resolve_padding(3.4, 10, 20) == 3


def test_zero_padding_keeps_one_pixel_border():
    result = crop_borders(block_image(), 255)
    assert result.image.shape == (5, 6, 3)
    assert result.source == Window(3, 6, 4, 8)
    assert result.destination == Window(1, 4, 1, 5)
    assert np.all(result.image[1:4, 1:5] == 0)
    assert np.all(result.image[0] == 255)
    assert np.all(result.image[:, -1] == 255)


def test_bbox_rel_is_postscript_oriented():
    result = crop_borders(block_image(), [255, 255, 255])
    assert result.bbox_rel == pytest.approx((4 / 12, 0.3, 0.75, 0.7))


def test_positive_padding_fills_with_background():
    result = crop_borders(block_image(), 255, padding=3)
    assert result.image.shape == (3 + 6, 4 + 6, 3)
    assert result.destination == Window(3, 6, 3, 7)
    assert np.all(result.image[:3] == 255)


def test_relative_padding():
    # Mean of the cropped extents (2 and 3) times 0.9, rounded
    result = crop_borders(block_image(), 255, padding=0.9)
    assert result.image.shape == (3 + 4, 4 + 4, 3)


def test_negative_padding_crops_inward():
    result = crop_borders(block_image(), 255, padding=-1)
    assert result.destination is None
    assert result.source == Window(4, 5, 5, 7)
    assert result.image.shape == (1, 2, 3)
    assert np.all(result.image == 0)


def test_negative_padding_never_crosses_content():
    result = crop_borders(block_image(), 255, padding=-5)
    assert result.image.shape == (1, 1, 3)
    assert result.source == Window(4, 5, 5, 6)


def test_uniform_image_is_not_cropped():
    img = np.full((4, 5), 7, dtype=np.uint8)
    result = crop_borders(img, 7)
    assert result.source == Window(0, 4, 0, 5)
    assert result.image.shape == (6, 7)
    assert np.all(result.image == 7)


def test_explicit_crop_amounts():
    result = crop_borders(block_image(), 255, crop_amounts=(1, 2, math.nan, math.nan))
    # top fixed at row 1, right fixed at column 9, others detected
    assert result.source == Window(1, 6, 4, 10)


def test_short_crop_amounts_are_filled_with_auto():
    result = crop_borders(block_image(), 255, crop_amounts=[math.inf])
    assert result.source == Window(3, 6, 4, 8)


def test_excessive_crop_amounts_are_clamped():
    img = block_image()
    result = crop_borders(img, 255, crop_amounts=(100, 100, math.nan, math.nan))
    window = result.source
    assert 0 <= window.top < window.bottom <= img.shape[0]
    assert 0 <= window.left < window.right <= img.shape[1]


def test_two_dimensional_input():
    img = np.zeros((5, 5), dtype=np.float32)
    img[2, 2] = 1.0
    result = crop_borders(img, 0)
    assert result.image.ndim == 2
    assert result.image.shape == (3, 3)
    assert result.image[1, 1] == 1.0


def test_stack_crop_covers_all_frames():
    stack = np.zeros((6, 6, 3, 2), dtype=np.uint8)
    stack[1, 1, :, 0] = 255
    stack[4, 4, 0, 1] = 255
    result = crop_borders(stack, 0)
    assert result.source == Window(1, 5, 1, 5)
    assert result.image.shape == (6, 6, 3, 2)


def test_transparent_background_uses_edge_samples():
    img = block_image()
    img[:, :, 0] = np.where(img[:, :, 0] == 255, 40, img[:, :, 0])
    explicit = crop_borders(img, [40, 255, 255])
    sampled = crop_borders(img, None)
    assert sampled.source == explicit.source


def test_background_channel_mismatch():
    with pytest.raises(ValueError):
        crop_borders(block_image(), [255, 255])


def test_empty_image():
    with pytest.raises(ValueError):
        crop_borders(np.zeros((0, 4)), 0)


def test_visualizer_saves_each_step(tmp_path):
    from figexport.visualizer import DebugVisualizer

    visualizer = DebugVisualizer(tmp_path / "debug")
    crop_borders(block_image(), 255, visualizer=visualizer)
    names = sorted(p.name for p in (tmp_path / "debug").iterdir())
    assert names == ["01_input.png", "02_content_mask.png", "03_profiles.png", "04_result.png"]


def test_visualizer_backs_up_existing_dir(tmp_path):
    from figexport.visualizer import DebugVisualizer

    out = tmp_path / "debug"
    out.mkdir()
    (out / "old.png").write_bytes(b"")
    DebugVisualizer(out)
    assert (tmp_path / "debug.bak" / "old.png").exists()
    assert list(out.iterdir()) == []
