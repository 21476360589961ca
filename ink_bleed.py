"""
Ink bleed: a randomized dilation of dark ("ink") pixels into neighbouring
light ("paper") pixels, modelling ink wicking along paper fibers.

The effect is stochastic. Pass a seeded ``numpy.random.Generator`` to get a
reproducible pattern; without one every call draws fresh randomness.
"""

import logging
import math
from typing import Optional

import numpy as np
from scipy import ndimage

from pixel_buffer import PixelBuffer, clamp, luminance, round_half_up

__all__ = [
    'INK_LEVEL',
    'BLEED_OPACITY',
    'PAPER_SHARE',
    'bleed_passes',
    'bleed_probability',
    'apply_ink_bleed',
]

logger = logging.getLogger(__name__)

INK_LEVEL = 128
BLEED_OPACITY = 0.9
# white share of a bled pixel, 0.1 * 255 written exactly
PAPER_SHARE = 25.5

# 4-connected neighbourhood
_CROSS = ndimage.generate_binary_structure(2, 1)

# (dy, dx) in the order neighbours are consulted; the first ink hit donates its color
_NEIGHBOUR_ORDER = ((-1, 0), (1, 0), (0, -1), (0, 1))


def bleed_passes(amount: float) -> int:
    """Number of dilation passes: round(amount * 3) kept within 1..3."""
    return int(min(3, max(1, math.floor(amount * 3 + 0.5))))


def bleed_probability(amount: float, roughness: float, u):
    """
    Chance that a paper pixel touching ink turns into ink.
    ``u`` is a uniform draw in [0, 1); roughness widens the spread around the base rate.
    """
    return (0.3 + amount * 0.5) * (1 - roughness * 0.5 + u * roughness)


def _shifted(arr: np.ndarray, dy: int, dx: int, fill) -> np.ndarray:
    """out[y, x] = arr[y + dy, x + dx], ``fill`` where that falls outside."""
    h, w = arr.shape[:2]
    out = np.full_like(arr, fill)
    ys_dst = slice(max(0, -dy), h - max(0, dy))
    xs_dst = slice(max(0, -dx), w - max(0, dx))
    ys_src = slice(max(0, dy), h - max(0, -dy))
    xs_src = slice(max(0, dx), w - max(0, -dx))
    out[ys_dst, xs_dst] = arr[ys_src, xs_src]
    return out


def _bleed_pass(pixels: np.ndarray, amount: float, roughness: float,
                rng: np.random.Generator) -> np.ndarray:
    ink = luminance(pixels) < INK_LEVEL
    candidates = ~ink & ndimage.binary_dilation(ink, structure=_CROSS)
    result = pixels.copy()
    if not candidates.any():
        return result

    donor = np.zeros(pixels.shape[:2] + (3,), dtype=np.float64)
    found = np.zeros(ink.shape, dtype=bool)
    rgb = pixels[..., :3].astype(np.float64)
    for dy, dx in _NEIGHBOUR_ORDER:
        neighbour_ink = _shifted(ink, dy, dx, False)
        take = neighbour_ink & ~found
        donor[take] = _shifted(rgb, dy, dx, 0.0)[take]
        found |= take

    ys, xs = np.nonzero(candidates)
    u = rng.random(len(ys))
    flip = rng.random(len(ys)) < bleed_probability(amount, roughness, u)
    ys, xs = ys[flip], xs[flip]
    bled = round_half_up(donor[ys, xs] * BLEED_OPACITY + PAPER_SHARE)
    result[ys, xs, :3] = bled.astype(np.uint8)
    logger.debug("Ink bleed pass: %d of %d edge pixels flipped", len(ys), len(flip))
    return result


def apply_ink_bleed(buffer: PixelBuffer, amount: float, roughness: float = 0.5,
                    rng: Optional[np.random.Generator] = None) -> PixelBuffer:
    """
    Spread ink into adjacent paper over 1-3 passes.

    Args:
        buffer: dithered layer (or gradient output)
        amount: spread strength, clamped to (0, 1]; drives pass count and base rate
        roughness: irregularity of the spread, clamped to [0, 1]
        rng: random source; a fresh unseeded generator is used when omitted

    Returns:
        New buffer. Existing ink is never changed; each pass reads the output
        of the previous one.
    """
    if buffer.is_empty:
        return buffer.copy()
    amount = clamp(amount, 1e-6, 1.0, 0.5)
    roughness = clamp(roughness, 0.0, 1.0, 0.5)
    if rng is None:
        rng = np.random.default_rng()

    pixels = buffer.pixels
    for _ in range(bleed_passes(amount)):
        pixels = _bleed_pass(pixels, amount, roughness, rng)
    return PixelBuffer(buffer.width, buffer.height, pixels)
