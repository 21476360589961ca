"""
Blend modes and the darkness-to-alpha rule used to lay a dithered, colored
layer onto the accumulating canvas.

Every blend function takes (base, blend, alpha) channel values in 0-255 and
is alpha-composited: alpha scales the blended result and (1 - alpha) keeps
the base. They accept Python scalars or numpy arrays.
"""

import logging
from enum import Enum
from typing import Callable, Tuple

import numpy as np

from pixel_buffer import PixelBuffer, clamp, to_channel

logger = logging.getLogger(__name__)

# Dithered pixels with darkness at or below this contribute nothing
TRANSPARENT_DARKNESS = 0.02


class BlendMode(Enum):
    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    DARKEN = "darken"
    LIGHTEN = "lighten"

    @classmethod
    def parse(cls, value) -> 'BlendMode':
        """Resolve a blend mode by enum or name; unknown names become MULTIPLY."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            logger.warning("Unknown blend mode '%s', falling back to '%s'", value, cls.MULTIPLY.value)
            return cls.MULTIPLY


def blend_normal(base, blend, alpha):
    return blend * alpha + base * (1 - alpha)


def blend_multiply(base, blend, alpha):
    return ((base / 255) * (blend / 255) * 255) * alpha + base * (1 - alpha)


def blend_screen(base, blend, alpha):
    return (255 - ((255 - base) / 255) * ((255 - blend) / 255) * 255) * alpha + base * (1 - alpha)


def blend_overlay(base, blend, alpha):
    base = np.asarray(base, dtype=np.float64)
    result = np.where(base < 128,
                      (2 * base * blend) / 255,
                      255 - (2 * (255 - base) * (255 - blend)) / 255)
    return result * alpha + base * (1 - alpha)


def blend_darken(base, blend, alpha):
    return np.minimum(base, blend) * alpha + base * (1 - alpha)


def blend_lighten(base, blend, alpha):
    return np.maximum(base, blend) * alpha + base * (1 - alpha)


BLEND_FUNCTIONS = {
    BlendMode.NORMAL: blend_normal,
    BlendMode.MULTIPLY: blend_multiply,
    BlendMode.SCREEN: blend_screen,
    BlendMode.OVERLAY: blend_overlay,
    BlendMode.DARKEN: blend_darken,
    BlendMode.LIGHTEN: blend_lighten,
}


def get_blend_function(mode) -> Callable:
    return BLEND_FUNCTIONS[BlendMode.parse(mode)]


def darkness_alpha(dithered: np.ndarray, opacity: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-pixel alpha of a dithered layer.

    Args:
        dithered: dithered channel values (0 = full ink, 255 = paper)
        opacity: layer opacity in [0, 1]

    Returns:
        (alpha, mask) where alpha = opacity * (1 - dithered/255) and mask marks
        the pixels dark enough to be painted at all
    """
    darkness = 1 - np.asarray(dithered, dtype=np.float64) / 255
    return opacity * darkness, darkness > TRANSPARENT_DARKNESS


def composite_layer(base: PixelBuffer, dithered: PixelBuffer, color: Tuple[int, int, int],
                    mode, opacity: float, origin: Tuple[float, float] = (0.0, 0.0)) -> PixelBuffer:
    """
    Paint ``color`` onto a copy of ``base`` through the ink mask ``dithered``.

    Canvas pixel (x, y) reads the mask at (floor(x + origin_x), floor(y + origin_y));
    pixels that map outside the mask are left alone.
    """
    out = base.pixels.copy()
    if base.is_empty or dithered.is_empty:
        return PixelBuffer(base.width, base.height, out)

    blend_fn = get_blend_function(mode)
    opacity = clamp(opacity, 0.0, 1.0, 1.0)

    sx = np.floor(np.arange(base.width) + origin[0]).astype(np.intp)
    sy = np.floor(np.arange(base.height) + origin[1]).astype(np.intp)
    col_ok = (sx >= 0) & (sx < dithered.width)
    row_ok = (sy >= 0) & (sy < dithered.height)
    if not col_ok.any() or not row_ok.any():
        return PixelBuffer(base.width, base.height, out)

    rows = np.flatnonzero(row_ok)
    cols = np.flatnonzero(col_ok)
    mask_values = dithered.pixels[sy[rows][:, None], sx[cols][None, :], 0]
    alpha, painted = darkness_alpha(mask_values, opacity)

    region = out[rows[0]:rows[-1] + 1, cols[0]:cols[-1] + 1]
    for channel in range(3):
        current = region[..., channel].astype(np.float64)
        blended = blend_fn(current, float(color[channel]), alpha)
        region[..., channel] = np.where(painted, to_channel(blended), region[..., channel])
    return PixelBuffer(base.width, base.height, out)
