"""Tests for pipeline."""

import numpy as np
import pytest

from blending import BlendMode
from dithering_lib import DitherMode
from gradient_map import GradientSpec, GradientSpecError
from layer_stack import InkBleedSettings, Layer, LayerStackError
from pipeline import SOURCE_FILL, RenderParams, place_on_canvas, prepare_source, render
from pixel_buffer import PixelBuffer


def test_black_layer_over_white_gives_black(solid):
    params = RenderParams(layers=(Layer("black", DitherMode.BAYER4x4, blend_mode=BlendMode.NORMAL),))
    out = render(solid(8, 8, 0), params)
    assert (out.pixels[..., :3] == 0).all()
    assert (out.pixels[..., 3] == 255).all()


def test_empty_source_gives_empty_output():
    out = render(PixelBuffer.new(0, 4), RenderParams())
    assert out.size == (0, 4)


@pytest.mark.parametrize("scale", [0.5, 1.0, 1.37, 2.0])
def test_output_matches_source_size(scale, ramp):
    out = render(ramp(21, 13), RenderParams(image_scale=scale))
    assert out.size == (21, 13)


def test_prepare_source_centers_scaled_image(solid):
    scaled, offset = prepare_source(solid(4, 6, 10), 2.0)
    assert scaled.size == (8, 12)
    assert offset == (2.0, 3.0)


def test_prepare_source_flattens_transparency():
    src = PixelBuffer.new(3, 3, (0, 0, 0, 0))
    scaled, offset = prepare_source(src, 1.0)
    assert offset == (0.0, 0.0)
    assert (scaled.pixels == SOURCE_FILL).all()


def test_shrunk_image_leaves_background_margin(solid):
    # a 0.5x image covers only the middle 4x4 of the 8x8 canvas
    params = RenderParams(layers=(Layer("black", DitherMode.NONE, blend_mode=BlendMode.NORMAL),),
                          image_scale=0.5)
    out = render(solid(8, 8, 0), params)
    assert (out.pixels[2:6, 2:6, :3] == 0).all()
    assert out.pixels[0, 0, :3].tolist() == [255, 255, 255]
    assert out.pixels[7, 7, :3].tolist() == [255, 255, 255]


def test_place_on_canvas_keeps_base_outside_image(solid):
    out = place_on_canvas(solid(4, 4, 255), solid(2, 2, 0), (-1, -1))
    assert out.pixels[0, 0, 0] == 255
    assert out.pixels[1, 1, 0] == 0
    assert out.pixels[2, 2, 0] == 0
    assert out.pixels[3, 3, 0] == 255


def test_gradient_mode_recolors(ramp):
    params = RenderParams(gradient=GradientSpec(stops=("hearth", "threshold")))
    out = render(ramp(16, 4), params)
    assert out.pixels[0, 0, :3].tolist() == [67, 14, 10]
    assert out.pixels[0, -1, :3].tolist() == [199, 169, 90]
    assert (out.pixels[..., 3] == 255).all()


def test_gradient_mode_ignores_layers(ramp):
    gradient = GradientSpec(stops=("black", "white"))
    a = render(ramp(16, 4), RenderParams(gradient=gradient, layers=()))
    b = render(ramp(16, 4), RenderParams(gradient=gradient, layers=(Layer("festival"),)))
    assert a == b


def test_invalid_stack_raises(ramp):
    with pytest.raises(LayerStackError):
        render(ramp(4, 4), RenderParams(layers=()))
    with pytest.raises(GradientSpecError):
        render(ramp(4, 4), RenderParams(gradient=GradientSpec(stops=("black",))))


def test_seeded_ink_bleed_is_reproducible(ramp):
    params = RenderParams(layers=(Layer("hearth", DitherMode.HALFTONE_CIRCLE, scale=6),),
                          ink_bleed=InkBleedSettings(enabled=True, amount=0.7), seed=1234)
    assert render(ramp(32, 32), params) == render(ramp(32, 32), params)


def test_explicit_rng_wins_over_seed(ramp):
    params = RenderParams(layers=(Layer("hearth", DitherMode.ATKINSON, scale=2),),
                          ink_bleed=InkBleedSettings(enabled=True, amount=1.0), seed=5)
    a = render(ramp(24, 24), params, rng=np.random.default_rng(99))
    b = render(ramp(24, 24), params, rng=np.random.default_rng(99))
    assert a == b


def test_invert_and_brightness_change_output(ramp):
    base = render(ramp(16, 16), RenderParams())
    assert render(ramp(16, 16), RenderParams(invert=True)) != base
    assert render(ramp(16, 16), RenderParams(brightness=0.4)) != base


def test_background_color_and_fallback(solid):
    hidden = (Layer("black", visible=False),)
    out = render(solid(2, 2, 0), RenderParams(layers=hidden, background="#f5f0e6"))
    assert out.pixels[0, 0].tolist() == [245, 240, 230, 255]
    out = render(solid(2, 2, 0), RenderParams(layers=hidden, background="not-a-color"))
    assert out.pixels[0, 0].tolist() == [255, 255, 255, 255]
