"""
RGBA8 raster container shared by every stage of the screen-print pipeline,
plus the luminance helper all algorithms classify pixels with.
"""

import math
from typing import Tuple

import numpy as np

__all__ = [
    'PixelBuffer',
    'LUMA_WEIGHTS',
    'luminance',
    'to_channel',
    'round_half_up',
    'clamp',
]

# Rec. 601 weights, applied in this order so results are reproducible
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """
    Luminance of an (..., 3+) pixel array on the 0-255 scale, as float64.
    """
    px = pixels.astype(np.float64)
    r, g, b = LUMA_WEIGHTS
    return px[..., 0] * r + px[..., 1] * g + px[..., 2] * b


def to_channel(values) -> np.ndarray:
    """
    Store fractional channel values as bytes: clamp to [0, 255], round half to even.
    """
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def round_half_up(values):
    """Rounding used for coverage, bleed and interpolation values (x.5 goes up)."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def clamp(value, low: float, high: float, default: float) -> float:
    """
    Clamp a user-supplied number into [low, high]. Missing or non-numeric
    values (None, NaN, junk strings) become ``default``.
    """
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(value):
        return default
    return min(high, max(low, value))


class PixelBuffer:
    """
    An 8-bit RGBA raster. ``pixels`` has shape (height, width, 4) and dtype uint8.

    Buffers are treated as values: every stage returns a new buffer instead of
    writing into the one it received.
    """

    __slots__ = ('width', 'height', 'pixels')

    def __init__(self, width: int, height: int, pixels: np.ndarray):
        width, height = int(width), int(height)
        if width < 0 or height < 0:
            raise ValueError(f"Negative buffer size: {width}x{height}")
        arr = np.asarray(pixels)
        if arr.size != width * height * 4:
            raise ValueError(
                f"Pixel data has {arr.size} values, expected {width * height * 4} "
                f"for a {width}x{height} RGBA buffer"
            )
        self.width = width
        self.height = height
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        self.pixels = arr.reshape((height, width, 4))

    @classmethod
    def new(cls, width: int, height: int,
            fill: Tuple[int, int, int, int] = (255, 255, 255, 255)) -> 'PixelBuffer':
        """Buffer of the given size filled with one RGBA color."""
        pixels = np.empty((max(0, int(height)), max(0, int(width)), 4), dtype=np.uint8)
        pixels[...] = np.asarray(fill, dtype=np.uint8)
        return cls(width, height, pixels)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> 'PixelBuffer':
        """
        Wrap an (h, w, 3) or (h, w, 4) array. RGB input gets an opaque alpha channel.
        """
        arr = np.asarray(arr)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"Expected an (h, w, 3|4) array, got shape {arr.shape}")
        h, w = arr.shape[:2]
        if arr.shape[2] == 3:
            rgba = np.full((h, w, 4), 255, dtype=np.uint8)
            rgba[..., :3] = np.clip(arr, 0, 255)
        else:
            rgba = np.clip(arr, 0, 255).astype(np.uint8)
        return cls(w, h, rgba)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def copy(self) -> 'PixelBuffer':
        return PixelBuffer(self.width, self.height, self.pixels.copy())

    def luminance(self) -> np.ndarray:
        """Per-pixel luminance, shape (height, width), range 0-255."""
        return luminance(self.pixels)

    def flat(self) -> np.ndarray:
        """Row-major RGBA bytes, length width*height*4."""
        return self.pixels.reshape(-1)

    def __eq__(self, other):
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return (self.width == other.width and self.height == other.height
                and np.array_equal(self.pixels, other.pixels))

    def __repr__(self):
        return f"PixelBuffer({self.width}x{self.height})"
