"""
Gradient map mode: recolor an image by mapping luminance onto a ramp of
2-4 palette colors, optionally through a dither first for a hard-edged print look.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from dithering_lib import DitherMode, dither
from palette import PaletteEntry, resolve_color
from pixel_buffer import PixelBuffer, clamp, round_half_up

__all__ = [
    'GradientSpecError',
    'GradientSpec',
    'MIN_STOPS',
    'MAX_STOPS',
    'interpolate_color',
    'apply_gradient_map',
    'map_dithered',
    'map_gradient',
]

logger = logging.getLogger(__name__)

MIN_STOPS = 2
MAX_STOPS = 4

RGB = Tuple[int, int, int]


class GradientSpecError(ValueError):
    """Raised when a gradient has too few color stops to form a ramp."""
    pass


@dataclass(frozen=True)
class GradientSpec:
    """Color stops (palette keys, dark to light) plus the optional pre-dither."""
    stops: Tuple[str, ...] = ('black', 'white')
    dither_type: DitherMode = DitherMode.NONE
    scale: float = 8
    angle: float = 15
    threshold: float = 0.5

    def normalized(self) -> 'GradientSpec':
        """
        Validated copy: numeric fields clamped, dither type resolved.

        Raises:
            GradientSpecError: If fewer than two stops are given
        """
        stops = tuple(self.stops or ())
        if len(stops) < MIN_STOPS:
            raise GradientSpecError(
                f"Gradient needs at least {MIN_STOPS} color stops, got {len(stops)}")
        if len(stops) > MAX_STOPS:
            logger.warning("Gradient has %d stops, keeping the first %d", len(stops), MAX_STOPS)
            stops = stops[:MAX_STOPS]
        return GradientSpec(
            stops=stops,
            dither_type=DitherMode.parse(self.dither_type),
            scale=clamp(self.scale, 2, 32, 8),
            angle=clamp(self.angle, 0, 180, 15),
            threshold=clamp(self.threshold, 0, 1, 0.5),
        )

    def colors(self, palette: Optional[Dict[str, PaletteEntry]] = None) -> List[RGB]:
        return [resolve_color(key, palette) for key in self.stops]


def interpolate_color(color1: Sequence[float], color2: Sequence[float], t):
    """
    Linear RGB interpolation, rounded half up. Colors may be single triples or
    (..., 3) arrays; ``t`` broadcasts against their leading dimensions.
    """
    c1 = np.asarray(color1, dtype=np.float64)
    c2 = np.asarray(color2, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64)[..., None]
    return round_half_up(c1 + (c2 - c1) * t)


def _check_stops(colors: Sequence[RGB]) -> np.ndarray:
    if len(colors) < MIN_STOPS:
        raise GradientSpecError(
            f"Gradient needs at least {MIN_STOPS} color stops, got {len(colors)}")
    return np.asarray(colors, dtype=np.float64)


def apply_gradient_map(buffer: PixelBuffer, colors: Sequence[RGB]) -> PixelBuffer:
    """
    Continuous gradient map: luminance picks a position along the ramp and the
    two bracketing stops are blended linearly.
    """
    stops = _check_stops(colors)
    out = buffer.pixels.copy()
    if buffer.is_empty:
        return PixelBuffer(buffer.width, buffer.height, out)

    n = len(stops)
    scaled = buffer.luminance() / 255 * (n - 1)
    index = np.minimum(np.floor(scaled), n - 2).astype(np.intp)
    t = scaled - index
    out[..., :3] = interpolate_color(stops[index], stops[index + 1], t).astype(np.uint8)
    return PixelBuffer(buffer.width, buffer.height, out)


def map_dithered(dithered: PixelBuffer, colors: Sequence[RGB]) -> PixelBuffer:
    """
    Snap a dithered buffer onto the ramp. Two stops split at 0.5; with more,
    the dithered value selects the nearest stop.
    """
    stops = _check_stops(colors)
    out = dithered.pixels.copy()
    if dithered.is_empty:
        return PixelBuffer(dithered.width, dithered.height, out)

    n = len(stops)
    value = dithered.pixels[..., 0].astype(np.float64) / 255
    if n == 2:
        index = (value >= 0.5).astype(np.intp)
    else:
        index = np.minimum(round_half_up(value * (n - 1)), n - 1).astype(np.intp)
    out[..., :3] = stops[index].astype(np.uint8)
    return PixelBuffer(dithered.width, dithered.height, out)


def map_gradient(buffer: PixelBuffer, spec: GradientSpec,
                 palette: Optional[Dict[str, PaletteEntry]] = None) -> PixelBuffer:
    """
    Gradient map with the gradient's optional pre-dither.

    Raises:
        GradientSpecError: If the gradient has fewer than two stops
    """
    spec = spec.normalized()
    colors = spec.colors(palette)
    if spec.dither_type == DitherMode.NONE:
        return apply_gradient_map(buffer, colors)
    dithered = dither(buffer, spec.dither_type, spec.threshold, spec.scale, spec.angle)
    return map_dithered(dithered, colors)
