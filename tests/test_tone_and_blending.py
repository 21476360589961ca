"""Tests for tone and blending."""

import numpy as np
import pytest

from blending import (
    BLEND_FUNCTIONS,
    TRANSPARENT_DARKNESS,
    BlendMode,
    composite_layer,
    darkness_alpha,
)
from pixel_buffer import PixelBuffer
from tone import adjust_tone, apply_brightness_contrast, contrast_factor, invert


# -------------------- tone --------------------

def test_contrast_factor_is_one_at_zero():
    assert contrast_factor(0) == pytest.approx(1.0)
    assert contrast_factor(0.5) > 1 > contrast_factor(-0.5)


def test_brightness_shifts_channels(solid):
    out = apply_brightness_contrast(solid(2, 2, 100), 0.2, 0)
    assert (out.pixels[..., :3] == 151).all()


def test_brightness_clamps_at_white(solid):
    out = apply_brightness_contrast(solid(2, 2, 250), 0.5, 0)
    assert (out.pixels[..., :3] == 255).all()


def test_brightness_and_contrast_are_clamped(solid):
    src = solid(2, 2, 100)
    assert apply_brightness_contrast(src, 5, 5) == apply_brightness_contrast(src, 0.5, 0.5)


def test_contrast_spreads_around_midpoint(solid):
    dark = apply_brightness_contrast(solid(1, 1, 100), 0, 0.3).pixels[0, 0, 0]
    light = apply_brightness_contrast(solid(1, 1, 160), 0, 0.3).pixels[0, 0, 0]
    assert dark < 100
    assert light > 160


def test_invert_keeps_alpha():
    px = np.zeros((1, 2, 4), dtype=np.uint8)
    px[0, 0] = [10, 20, 30, 77]
    out = invert(PixelBuffer(2, 1, px))
    assert out.pixels[0, 0].tolist() == [245, 235, 225, 77]


def test_adjust_tone_is_identity_by_default(solid):
    src = solid(3, 3, 42)
    out = adjust_tone(src)
    assert out == src
    assert out is not src


def test_adjust_tone_inverts_after_brightness(solid):
    out = adjust_tone(solid(1, 1, 100), brightness=0.2, inverted=True)
    assert out.pixels[0, 0, 0] == 255 - 151


# -------------------- blending --------------------

@pytest.mark.parametrize("mode", list(BlendMode))
def test_blend_is_identity_at_zero_alpha(mode):
    base = np.array([0.0, 50.0, 128.0, 200.0, 255.0])
    result = BLEND_FUNCTIONS[mode](base, 123.0, 0.0)
    assert np.allclose(result, base)


def test_multiply_over_white_gives_ink_color():
    assert BLEND_FUNCTIONS[BlendMode.MULTIPLY](np.array([255.0]), 67.0, 1.0)[0] == pytest.approx(67)


def test_screen_over_black_gives_ink_color():
    assert BLEND_FUNCTIONS[BlendMode.SCREEN](np.array([0.0]), 67.0, 1.0)[0] == pytest.approx(67)


def test_unknown_blend_mode_falls_back_to_multiply():
    assert BlendMode.parse("dissolve") == BlendMode.MULTIPLY
    assert BlendMode.parse("SCREEN") == BlendMode.SCREEN


def test_darkness_alpha_threshold():
    alpha, mask = darkness_alpha(np.array([0, 250, 255]), 0.5)
    assert alpha.tolist() == pytest.approx([0.5, 0.5 * 5 / 255, 0.0])
    assert mask.tolist() == [True, False, False]
    assert 5 / 255 < TRANSPARENT_DARKNESS


def _mask(values):
    values = np.asarray(values, dtype=np.uint8)
    h, w = values.shape
    px = np.full((h, w, 4), 255, dtype=np.uint8)
    px[..., :3] = values[..., None]
    return PixelBuffer(w, h, px)


def test_composite_paints_only_dark_mask_pixels(solid):
    base = solid(2, 1, 255)
    out = composite_layer(base, _mask([[0, 252]]), (233, 40, 10), BlendMode.MULTIPLY, 1.0)
    assert out.pixels[0, 0].tolist() == [233, 40, 10, 255]
    assert out.pixels[0, 1].tolist() == [255, 255, 255, 255]


def test_composite_respects_opacity(solid):
    out = composite_layer(solid(1, 1, 255), _mask([[0]]), (0, 0, 0), BlendMode.NORMAL, 0.5)
    # 127.5 stored as a byte rounds half to even
    assert out.pixels[0, 0, 0] == 128


def test_composite_origin_shifts_mask(solid):
    mask = _mask([[0, 255, 255]])
    out = composite_layer(solid(3, 1, 255), mask, (0, 0, 0), BlendMode.NORMAL, 1.0, (-1, 0))
    # canvas x reads mask x - 1: column 0 has no mask pixel, column 1 reads the ink
    assert out.pixels[0, :, 0].tolist() == [255, 0, 255]


def test_composite_does_not_touch_base(solid):
    base = solid(2, 2, 255)
    composite_layer(base, _mask([[0, 0], [0, 0]]), (0, 0, 0), BlendMode.NORMAL, 1.0)
    assert (base.pixels == 255).all()
