"""Tests for pixel_buffer."""

import math

import numpy as np
import pytest

from pixel_buffer import LUMA_WEIGHTS, PixelBuffer, clamp, luminance, round_half_up, to_channel


def test_new_fills_every_pixel():
    buf = PixelBuffer.new(3, 2, (10, 20, 30, 40))
    assert buf.pixels.shape == (2, 3, 4)
    assert buf.pixels.dtype == np.uint8
    assert (buf.pixels == [10, 20, 30, 40]).all()


def test_mismatched_data_raises():
    with pytest.raises(ValueError):
        PixelBuffer(2, 2, np.zeros(15, dtype=np.uint8))


def test_negative_size_raises():
    with pytest.raises(ValueError):
        PixelBuffer(-1, 2, np.zeros(0, dtype=np.uint8))


def test_flat_data_is_row_major():
    data = np.arange(2 * 3 * 4, dtype=np.uint8)
    buf = PixelBuffer(3, 2, data)
    assert buf.pixels[1, 0].tolist() == [12, 13, 14, 15]
    assert np.array_equal(buf.flat(), data)


def test_empty_buffer():
    buf = PixelBuffer.new(0, 5)
    assert buf.is_empty
    assert buf.size == (0, 5)
    assert buf.luminance().shape == (5, 0)


def test_from_rgb_array_adds_opaque_alpha():
    buf = PixelBuffer.from_array(np.zeros((2, 2, 3), dtype=np.uint8))
    assert (buf.pixels[..., 3] == 255).all()


def test_copy_is_independent():
    buf = PixelBuffer.new(2, 2)
    dup = buf.copy()
    dup.pixels[0, 0] = 0
    assert buf.pixels[0, 0, 0] == 255
    assert buf != dup


def test_luminance_weights():
    px = np.array([[[255, 0, 0, 255], [0, 255, 0, 255], [0, 0, 255, 255]]], dtype=np.uint8)
    assert luminance(px)[0].tolist() == pytest.approx([76.245, 149.685, 29.07])


def test_to_channel_rounds_half_to_even_and_clamps():
    assert to_channel(np.array([0.5, 1.5, 2.5, -3, 300])).tolist() == [0, 2, 2, 0, 255]


def test_round_half_up():
    assert round_half_up([0.5, 1.5, 2.5, -0.5]).tolist() == [1, 2, 3, 0]


def test_clamp_handles_junk():
    assert clamp(5, 0, 1, 0.5) == 1
    assert clamp(-5, 0, 1, 0.5) == 0
    assert clamp("abc", 0, 1, 0.5) == 0.5
    assert clamp(None, 0, 1, 0.5) == 0.5
    assert clamp(math.nan, 0, 1, 0.25) == 0.25


def test_constructor_clips_out_of_range_values():
    data = np.array([300, -5, 128, 255], dtype=np.int32)
    buf = PixelBuffer(1, 1, data)
    assert buf.pixels[0, 0].tolist() == [255, 0, 128, 255]


def test_luminance_uses_rec601_weights():
    px = np.array([[[255, 0, 0, 255], [0, 255, 0, 255], [0, 0, 255, 255]]], dtype=np.uint8)
    assert luminance(px)[0].tolist() == pytest.approx([255 * w for w in LUMA_WEIGHTS])
