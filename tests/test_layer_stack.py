"""Tests for layer_stack."""

import numpy as np
import pytest

from blending import BlendMode
from dithering_lib import DitherMode
from layer_stack import (
    MAX_LAYERS,
    InkBleedSettings,
    Layer,
    LayerStackError,
    composite_layers,
    dither_layer,
)

FESTIVAL = [233, 40, 10]
HORIZON = [0, 98, 255]


def flat_layer(color_key, **kwargs):
    """A layer that inks every dark source pixel at full strength."""
    kwargs.setdefault("dither_type", DitherMode.NONE)
    kwargs.setdefault("blend_mode", BlendMode.NORMAL)
    return Layer(color_key=color_key, **kwargs)


def test_empty_stack_raises(solid):
    with pytest.raises(LayerStackError):
        composite_layers(solid(4, 4, 0), [], solid(4, 4, 255))


def test_too_many_layers_raise(solid):
    layers = [flat_layer("hearth")] * (MAX_LAYERS + 1)
    with pytest.raises(LayerStackError):
        composite_layers(solid(4, 4, 0), layers, solid(4, 4, 255))


def test_later_layers_land_on_top(solid):
    src, base = solid(4, 4, 0), solid(4, 4, 255)
    out = composite_layers(src, [flat_layer("festival"), flat_layer("horizon")], base)
    assert out.pixels[0, 0, :3].tolist() == HORIZON
    out = composite_layers(src, [flat_layer("horizon"), flat_layer("festival")], base)
    assert out.pixels[0, 0, :3].tolist() == FESTIVAL


def test_hidden_layers_are_skipped(solid):
    src, base = solid(4, 4, 0), solid(4, 4, 255)
    out = composite_layers(src, [flat_layer("festival"), flat_layer("horizon", visible=False)], base)
    assert out.pixels[0, 0, :3].tolist() == FESTIVAL


def test_all_hidden_returns_background(solid):
    base = solid(4, 4, 255)
    out = composite_layers(solid(4, 4, 0), [flat_layer("festival", visible=False)], base)
    assert out == base


def test_offset_shifts_layer_and_uncovers_background(solid):
    src, base = solid(6, 3, 0), solid(6, 3, 255)
    out = composite_layers(src, [flat_layer("black", offset_x=2)], base)
    assert (out.pixels[:, :2, :3] == 255).all()
    assert (out.pixels[:, 2:, :3] == 0).all()


def test_negative_offset_uncovers_the_far_edge(solid):
    src, base = solid(3, 5, 0), solid(3, 5, 255)
    out = composite_layers(src, [flat_layer("black", offset_y=-1)], base)
    assert (out.pixels[-1, :, :3] == 255).all()
    assert (out.pixels[:-1, :, :3] == 0).all()


def test_base_is_not_modified(solid):
    base = solid(4, 4, 255)
    composite_layers(solid(4, 4, 0), [flat_layer("black")], base)
    assert (base.pixels == 255).all()


def test_parallel_dithering_matches_sequential(ramp, solid):
    src, base = ramp(32, 16), solid(32, 16, 255)
    layers = [
        Layer("festival", DitherMode.HALFTONE_CIRCLE, angle=15, offset_x=-3),
        Layer("hearth", DitherMode.ATKINSON, scale=2, offset_y=4),
        Layer("horizon", DitherMode.HALFTONE_LINES, angle=45, blend_mode=BlendMode.DARKEN),
    ]
    assert composite_layers(src, layers, base, workers=3) == composite_layers(src, layers, base)


def test_normalized_clamps_every_field():
    layer = Layer(dither_type="unknown", threshold=3, scale=100, angle=-20,
                  offset_x=80, offset_y=-80.4, blend_mode="glow", opacity=2).normalized()
    assert layer.dither_type == DitherMode.NONE
    assert layer.threshold == 1
    assert layer.scale == 32
    assert layer.angle == 0
    assert (layer.offset_x, layer.offset_y) == (50, -50)
    assert layer.blend_mode == BlendMode.MULTIPLY
    assert layer.opacity == 1


def test_minimum_scale_is_two():
    assert Layer(scale=1).normalized().scale == 2


def test_dither_layer_applies_ink_bleed(solid):
    src = solid(9, 9, 255)
    src.pixels[4, 4, :3] = 0
    layer = flat_layer("black")
    plain = dither_layer(src, layer)
    bled = dither_layer(src, layer, InkBleedSettings(enabled=True, amount=1.0, roughness=0.0),
                        np.random.default_rng(2))
    assert (bled.luminance() < 128).sum() >= (plain.luminance() < 128).sum()
    assert dither_layer(src, layer, InkBleedSettings(enabled=False)) == plain


def test_ink_bleed_settings_active():
    assert not InkBleedSettings().active
    assert InkBleedSettings(enabled=True).active
    assert not InkBleedSettings(enabled=True, amount=0).active
