"""
Tone adjustments applied to the source before any dithering or gradient mapping.
"""

import numpy as np

from pixel_buffer import PixelBuffer, clamp, to_channel

__all__ = [
    'contrast_factor',
    'apply_brightness_contrast',
    'invert',
    'adjust_tone',
]


def contrast_factor(contrast: float) -> float:
    """Classic contrast curve factor for contrast in [-0.5, 0.5]."""
    c = contrast * 255
    return (259 * (c + 255)) / (255 * (259 - c))


def apply_brightness_contrast(buffer: PixelBuffer, brightness: float,
                              contrast: float) -> PixelBuffer:
    """
    Shift every RGB channel by ``brightness * 255``, then stretch it around the
    128 midpoint by the contrast factor. Both inputs are clamped to [-0.5, 0.5].
    Alpha is left untouched.
    """
    brightness = clamp(brightness, -0.5, 0.5, 0.0)
    contrast = clamp(contrast, -0.5, 0.5, 0.0)
    out = buffer.pixels.copy()
    if buffer.is_empty:
        return PixelBuffer(buffer.width, buffer.height, out)

    factor = contrast_factor(contrast)
    rgb = buffer.pixels[..., :3].astype(np.float64) + brightness * 255
    out[..., :3] = to_channel(factor * (rgb - 128) + 128)
    return PixelBuffer(buffer.width, buffer.height, out)


def invert(buffer: PixelBuffer) -> PixelBuffer:
    """Photographic negative of the RGB channels; alpha untouched."""
    out = buffer.pixels.copy()
    out[..., :3] = 255 - out[..., :3]
    return PixelBuffer(buffer.width, buffer.height, out)


def adjust_tone(buffer: PixelBuffer, brightness: float = 0.0, contrast: float = 0.0,
                inverted: bool = False) -> PixelBuffer:
    """
    Pipeline order: brightness/contrast (skipped when both are zero), then invert.
    """
    result = buffer
    if brightness or contrast:
        result = apply_brightness_contrast(result, brightness, contrast)
    if inverted:
        result = invert(result)
    return result if result is not buffer else buffer.copy()
