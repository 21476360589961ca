"""
Layer mode: up to four independently dithered ink layers, each shifted by
its own misregistration offset and blended in order onto the canvas.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from functools import reduce
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from blending import BlendMode, composite_layer
from dithering_lib import DitherMode, dither
from ink_bleed import apply_ink_bleed
from palette import PaletteEntry, resolve_color
from pixel_buffer import PixelBuffer, clamp

__all__ = [
    'MAX_LAYERS',
    'LayerStackError',
    'Layer',
    'InkBleedSettings',
    'dither_layer',
    'composite_layers',
]

logger = logging.getLogger(__name__)

MAX_LAYERS = 4


class LayerStackError(ValueError):
    """Raised for an empty layer list or one with more than MAX_LAYERS entries."""
    pass


@dataclass(frozen=True)
class Layer:
    color_key: str = 'hearth'
    dither_type: DitherMode = DitherMode.HALFTONE_CIRCLE
    threshold: float = 0.5
    scale: int = 8
    angle: float = 15
    offset_x: int = 0
    offset_y: int = 0
    blend_mode: BlendMode = BlendMode.MULTIPLY
    opacity: float = 1.0
    visible: bool = True

    def normalized(self) -> 'Layer':
        """Copy with every field clamped to its range and enum keys resolved."""
        return replace(
            self,
            dither_type=DitherMode.parse(self.dither_type),
            threshold=clamp(self.threshold, 0.0, 1.0, 0.5),
            scale=int(round(clamp(self.scale, 2, 32, 8))),
            angle=clamp(self.angle, 0.0, 180.0, 0.0),
            offset_x=int(round(clamp(self.offset_x, -50, 50, 0))),
            offset_y=int(round(clamp(self.offset_y, -50, 50, 0))),
            blend_mode=BlendMode.parse(self.blend_mode),
            opacity=clamp(self.opacity, 0.0, 1.0, 1.0),
            visible=bool(self.visible),
        )


@dataclass(frozen=True)
class InkBleedSettings:
    enabled: bool = False
    amount: float = 0.5
    roughness: float = 0.5

    @property
    def active(self) -> bool:
        return bool(self.enabled) and clamp(self.amount, 0.0, 1.0, 0.0) > 0


def dither_layer(source: PixelBuffer, layer: Layer,
                 ink_bleed: Optional[InkBleedSettings] = None,
                 rng: Optional[np.random.Generator] = None) -> PixelBuffer:
    """The layer's ink mask: its dither, then ink bleed when enabled."""
    mask = dither(source, layer.dither_type, layer.threshold, layer.scale, layer.angle)
    if ink_bleed is not None and ink_bleed.active:
        mask = apply_ink_bleed(mask, ink_bleed.amount, ink_bleed.roughness, rng)
    return mask


def _check_stack(layers: Sequence[Layer]) -> List[Layer]:
    if not layers:
        raise LayerStackError("Layer stack is empty; add a layer or enable gradient mode")
    if len(layers) > MAX_LAYERS:
        raise LayerStackError(f"At most {MAX_LAYERS} layers are supported, got {len(layers)}")
    return [layer.normalized() for layer in layers]


def composite_layers(source: PixelBuffer, layers: Sequence[Layer], base: PixelBuffer,
                     palette: Optional[Dict[str, PaletteEntry]] = None,
                     canvas_offset: Tuple[float, float] = (0.0, 0.0),
                     ink_bleed: Optional[InkBleedSettings] = None,
                     rng: Optional[np.random.Generator] = None,
                     workers: int = 1) -> PixelBuffer:
    """
    Fold the visible layers, in order, onto ``base``.

    Args:
        source: tone-adjusted source every layer dithers
        layers: 1-4 layers; first is painted first, later ones land on top
        base: starting canvas (background fill); not modified
        palette: color table for the layers' color keys
        canvas_offset: position of the canvas origin inside ``source``
        ink_bleed: optional bleed applied to each layer's mask
        rng: random source for ink bleed
        workers: threads used to dither layers ahead of compositing

    Returns:
        New canvas buffer

    Raises:
        LayerStackError: If ``layers`` is empty or longer than MAX_LAYERS
    """
    visible = [layer for layer in _check_stack(layers) if layer.visible]
    if not visible:
        return base.copy()

    # Masks are independent of each other; only the blending below is ordered.
    # Ink bleed draws from the shared rng, so it stays on one thread.
    if workers > 1 and not (ink_bleed is not None and ink_bleed.active):
        with ThreadPoolExecutor(max_workers=workers) as pool:
            masks = list(pool.map(lambda layer: dither_layer(source, layer), visible))
    else:
        masks = [dither_layer(source, layer, ink_bleed, rng) for layer in visible]

    def paint(canvas: PixelBuffer, item) -> PixelBuffer:
        layer, mask = item
        origin = (canvas_offset[0] - layer.offset_x, canvas_offset[1] - layer.offset_y)
        logger.debug("Compositing %s layer (%s, %s) at offset %s",
                     layer.color_key, layer.dither_type.value, layer.blend_mode.value, origin)
        return composite_layer(canvas, mask, resolve_color(layer.color_key, palette),
                               layer.blend_mode, layer.opacity, origin)

    return reduce(paint, zip(visible, masks), base.copy())
