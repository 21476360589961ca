"""
Render pipeline: one immutable parameter set in, one raster out.

source -> scale onto a neutral gray canvas -> tone adjust ->
    gradient map (+ ink bleed)                 if a gradient is set
    layer stack (dither, ink bleed, blend)     otherwise
-> raster with the source's dimensions
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image

from gradient_map import GradientSpec, map_gradient
from ink_bleed import apply_ink_bleed
from layer_stack import InkBleedSettings, Layer, composite_layers
from palette import PaletteEntry, hex_to_rgb
from pixel_buffer import PixelBuffer, clamp
from tone import adjust_tone
from utils import buffer_from_image, buffer_to_image

__all__ = [
    'RenderParams',
    'InkBleedSettings',
    'SOURCE_FILL',
    'prepare_source',
    'place_on_canvas',
    'render',
]

logger = logging.getLogger(__name__)

# Areas of the scaled source not covered by the image read as mid gray
SOURCE_FILL = (136, 136, 136, 255)

MIN_IMAGE_SCALE = 0.5
MAX_IMAGE_SCALE = 2.0


@dataclass(frozen=True)
class RenderParams:
    """
    Everything one render depends on. Setting ``gradient`` selects gradient
    mode; otherwise ``layers`` are composited.
    """
    layers: Tuple[Layer, ...] = (Layer(),)
    gradient: Optional[GradientSpec] = None
    brightness: float = 0.0
    contrast: float = 0.0
    invert: bool = False
    ink_bleed: InkBleedSettings = field(default_factory=InkBleedSettings)
    background: str = '#ffffff'
    image_scale: float = 1.0
    seed: Optional[int] = None

    @property
    def gradient_enabled(self) -> bool:
        return self.gradient is not None


def _background_rgba(hex_color: str) -> Tuple[int, int, int, int]:
    try:
        r, g, b = hex_to_rgb(hex_color)
    except (ValueError, AttributeError):
        logger.warning("Invalid background color '%s', using white", hex_color)
        r, g, b = 255, 255, 255
    return r, g, b, 255


def prepare_source(buffer: PixelBuffer, image_scale: float = 1.0) -> Tuple[PixelBuffer, Tuple[float, float]]:
    """
    Scale the source by ``image_scale`` (clamped to [0.5, 2]) and flatten it
    onto an opaque gray fill.

    Returns:
        (scaled buffer, canvas offset) -- the offset is where the output
        canvas's origin sits inside the scaled buffer, so the image stays centered
    """
    if buffer.is_empty:
        return buffer.copy(), (0.0, 0.0)
    scale = clamp(image_scale, MIN_IMAGE_SCALE, MAX_IMAGE_SCALE, 1.0)
    sw = max(1, int(math.floor(buffer.width * scale + 0.5)))
    sh = max(1, int(math.floor(buffer.height * scale + 0.5)))

    image = buffer_to_image(buffer)
    if (sw, sh) != image.size:
        image = image.resize((sw, sh), Image.Resampling.BILINEAR)
    canvas = Image.new('RGBA', (sw, sh), SOURCE_FILL)
    canvas = Image.alpha_composite(canvas, image)

    offset = ((sw - buffer.width) / 2, (sh - buffer.height) / 2)
    return buffer_from_image(canvas), offset


def place_on_canvas(base: PixelBuffer, image: PixelBuffer,
                    offset: Tuple[float, float] = (0.0, 0.0)) -> PixelBuffer:
    """
    Copy ``image`` onto a copy of ``base``: canvas (x, y) takes image pixel
    (floor(x + offset_x), floor(y + offset_y)) as fully opaque color. Canvas
    pixels with no image pixel keep the base color.
    """
    out = base.pixels.copy()
    if base.is_empty or image.is_empty:
        return PixelBuffer(base.width, base.height, out)
    sx = np.floor(np.arange(base.width) + offset[0]).astype(np.intp)
    sy = np.floor(np.arange(base.height) + offset[1]).astype(np.intp)
    cols = np.flatnonzero((sx >= 0) & (sx < image.width))
    rows = np.flatnonzero((sy >= 0) & (sy < image.height))
    if len(cols) and len(rows):
        region = out[rows[0]:rows[-1] + 1, cols[0]:cols[-1] + 1]
        region[..., :3] = image.pixels[sy[rows][:, None], sx[cols][None, :], :3]
        region[..., 3] = 255
    return PixelBuffer(base.width, base.height, out)


def render(source: PixelBuffer, params: RenderParams,
           palette: Optional[Dict[str, PaletteEntry]] = None,
           rng: Optional[np.random.Generator] = None,
           workers: int = 1) -> PixelBuffer:
    """
    Run the full pipeline.

    Args:
        source: decoded input raster
        params: render parameters
        palette: ink table (defaults to the built-in palette)
        rng: random source for ink bleed; defaults to a generator seeded with
            ``params.seed`` (unseeded when that is None)
        workers: threads for dithering layers in parallel

    Returns:
        Raster with the same width and height as ``source``

    Raises:
        GradientSpecError: gradient mode with fewer than two stops
        LayerStackError: layer mode with no layers or more than four
    """
    if source.is_empty:
        return PixelBuffer.new(source.width, source.height)
    started = time.perf_counter()
    if rng is None:
        rng = np.random.default_rng(params.seed)

    scaled, offset = prepare_source(source, params.image_scale)
    adjusted = adjust_tone(scaled, params.brightness, params.contrast, params.invert)
    base = PixelBuffer.new(source.width, source.height, _background_rgba(params.background))

    if params.gradient_enabled:
        mapped = map_gradient(adjusted, params.gradient, palette)
        if params.ink_bleed.active:
            mapped = apply_ink_bleed(mapped, params.ink_bleed.amount, params.ink_bleed.roughness, rng)
        result = place_on_canvas(base, mapped, offset)
    else:
        result = composite_layers(adjusted, params.layers, base, palette, offset,
                                  params.ink_bleed, rng, workers)

    logger.debug("Rendered %dx%d (%s mode) in %.3fs", source.width, source.height,
                 'gradient' if params.gradient_enabled else 'layer',
                 time.perf_counter() - started)
    return result
