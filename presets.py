"""
Built-in presets and conversion between plain dict presets (as stored in
JSON) and render parameters. New layers, the randomizer and layer list
edits live here too.
"""

import logging
import math
import re
from dataclasses import asdict, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from blending import BlendMode
from dithering_lib import DitherMode
from gradient_map import GradientSpec, MAX_STOPS, MIN_STOPS
from layer_stack import InkBleedSettings, Layer, MAX_LAYERS
from palette import PaletteEntry, ink_keys
from pipeline import RenderParams

__all__ = [
    'PRESETS',
    'RANDOM_ALGORITHMS',
    'layer_from_dict',
    'layer_to_dict',
    'gradient_from_dict',
    'gradient_to_dict',
    'params_from_preset',
    'preset_from_params',
    'default_layer',
    'randomize_layers',
    'add_layer',
    'remove_layer',
    'duplicate_layer',
    'move_layer',
    'add_gradient_stop',
    'remove_gradient_stop',
    'preset_key',
]

logger = logging.getLogger(__name__)


PRESETS: Dict[str, Dict[str, Any]] = {
    'subtle': {
        'name': 'SUBTLE',
        'description': 'Light halftone overlay',
        'layers': [
            {'color_key': 'hearth', 'dither_type': 'halftone_circle', 'threshold': 0.55, 'scale': 8,
             'angle': 15, 'offset_x': 0, 'offset_y': 0, 'blend_mode': 'multiply', 'opacity': 0.85},
        ],
    },
    'bold': {
        'name': 'BOLD',
        'description': 'High contrast dual layer',
        'layers': [
            {'color_key': 'festival', 'dither_type': 'halftone_circle', 'threshold': 0.45, 'scale': 6,
             'angle': 15, 'offset_x': -8, 'offset_y': -8, 'blend_mode': 'multiply', 'opacity': 1},
            {'color_key': 'hearth', 'dither_type': 'halftone_circle', 'threshold': 0.5, 'scale': 6,
             'angle': 75, 'offset_x': 8, 'offset_y': 8, 'blend_mode': 'multiply', 'opacity': 1},
        ],
    },
    'vintage': {
        'name': 'VINTAGE',
        'description': 'Classic print aesthetic',
        'layers': [
            {'color_key': 'threshold', 'dither_type': 'atkinson', 'threshold': 0.5, 'scale': 2,
             'angle': 0, 'offset_x': 0, 'offset_y': 0, 'blend_mode': 'multiply', 'opacity': 0.9},
            {'color_key': 'hearth', 'dither_type': 'halftone_lines', 'threshold': 0.55, 'scale': 4,
             'angle': 45, 'offset_x': 2, 'offset_y': 2, 'blend_mode': 'multiply', 'opacity': 0.7},
        ],
    },
    'cmyk': {
        'name': 'CMYK',
        'description': 'Four-color process style',
        'layers': [
            {'color_key': 'horizon', 'dither_type': 'halftone_circle', 'threshold': 0.5, 'scale': 6,
             'angle': 15, 'offset_x': -4, 'offset_y': 0, 'blend_mode': 'multiply', 'opacity': 0.8},
            {'color_key': 'festival', 'dither_type': 'halftone_circle', 'threshold': 0.5, 'scale': 6,
             'angle': 45, 'offset_x': 0, 'offset_y': -4, 'blend_mode': 'multiply', 'opacity': 0.8},
            {'color_key': 'threshold', 'dither_type': 'halftone_circle', 'threshold': 0.5, 'scale': 6,
             'angle': 0, 'offset_x': 4, 'offset_y': 0, 'blend_mode': 'multiply', 'opacity': 0.8},
            {'color_key': 'hearth', 'dither_type': 'halftone_circle', 'threshold': 0.5, 'scale': 6,
             'angle': 75, 'offset_x': 0, 'offset_y': 4, 'blend_mode': 'multiply', 'opacity': 0.9},
        ],
    },
    'retro': {
        'name': 'RETRO',
        'description': '8-bit computer style',
        'layers': [
            {'color_key': 'rooted', 'dither_type': 'bayer8x8', 'threshold': 0.5, 'scale': 3,
             'angle': 0, 'offset_x': 0, 'offset_y': 0, 'blend_mode': 'multiply', 'opacity': 1},
        ],
    },
    'duotone': {
        'name': 'DUOTONE',
        'description': 'Two-color gradient effect',
        'gradient': {
            'stops': ['hearth', 'threshold'],
            'dither_type': 'halftone_circle',
            'scale': 6,
            'angle': 15,
            'threshold': 0.5,
        },
    },
}

# Algorithms the randomizer picks from
RANDOM_ALGORITHMS = (
    DitherMode.HALFTONE_CIRCLE,
    DitherMode.HALFTONE_LINES,
    DitherMode.BAYER4x4,
    DitherMode.BAYER8x8,
    DitherMode.FLOYD_STEINBERG,
    DitherMode.ATKINSON,
)

_LAYER_FIELDS = ('color_key', 'dither_type', 'threshold', 'scale', 'angle',
                 'offset_x', 'offset_y', 'blend_mode', 'opacity', 'visible')
_GRADIENT_FIELDS = ('stops', 'dither_type', 'scale', 'angle', 'threshold')
# Flat gradient keys used by presets saved as {"gradient": true, "gradientColors": [...], ...}
_GRADIENT_ALIASES = {
    'gradient_colors': 'stops',
    'dither_scale': 'scale',
    'dither_angle': 'angle',
    'dither_threshold': 'threshold',
}


def _snake(key: str) -> str:
    """colorKey -> color_key, so presets written with camelCase keys load too."""
    return re.sub(r'(?<=[a-z0-9])([A-Z])', r'_\1', key).lower()


def _pick(data: Dict[str, Any], fields) -> Dict[str, Any]:
    picked = {}
    for key, value in data.items():
        name = _snake(key)
        if name in fields:
            picked[name] = value
        else:
            logger.debug("Ignoring unknown preset field '%s'", key)
    return picked


def layer_from_dict(data: Dict[str, Any]) -> Layer:
    """Build a normalized Layer; missing fields take Layer defaults."""
    return Layer(**_pick(data, _LAYER_FIELDS)).normalized()


def layer_to_dict(layer: Layer) -> Dict[str, Any]:
    d = asdict(layer)
    d['dither_type'] = DitherMode.parse(layer.dither_type).value
    d['blend_mode'] = BlendMode.parse(layer.blend_mode).value
    return d


def gradient_from_dict(data: Dict[str, Any]) -> GradientSpec:
    """
    Raises:
        GradientSpecError: If fewer than two stops are listed
    """
    data = {_GRADIENT_ALIASES.get(_snake(k), k): v for k, v in data.items()}
    fields = _pick(data, _GRADIENT_FIELDS)
    if 'stops' in fields:
        fields['stops'] = tuple(fields['stops'] or ())
    return GradientSpec(**fields).normalized()


def gradient_to_dict(spec: GradientSpec) -> Dict[str, Any]:
    return {
        'stops': list(spec.stops),
        'dither_type': DitherMode.parse(spec.dither_type).value,
        'scale': spec.scale,
        'angle': spec.angle,
        'threshold': spec.threshold,
    }


def params_from_preset(preset: Dict[str, Any],
                       base: Optional[RenderParams] = None) -> RenderParams:
    """
    Apply a preset on top of ``base`` (defaults when omitted). Gradient presets
    switch to gradient mode; layer presets switch to layer mode. Ink bleed is
    only touched when the preset mentions it.
    """
    params = base if base is not None else RenderParams()
    gradient = preset.get('gradient')
    if gradient is True:
        gradient = {k: v for k, v in preset.items() if _snake(k) in _GRADIENT_ALIASES or k == 'ditherType'}
    if gradient:
        params = replace(params, gradient=gradient_from_dict(gradient))
    else:
        layers = preset.get('layers') or []
        if len(layers) > MAX_LAYERS:
            logger.warning("Preset '%s' has %d layers, keeping the first %d",
                           preset.get('name', '?'), len(layers), MAX_LAYERS)
        params = replace(params, gradient=None,
                         layers=tuple(layer_from_dict(d) for d in layers[:MAX_LAYERS]))

    bleed = dict(preset.get('ink_bleed') or {})
    if 'inkBleed' in preset:
        bleed.setdefault('enabled', preset['inkBleed'])
    if 'inkBleedAmount' in preset:
        bleed.setdefault('amount', preset['inkBleedAmount'])
    if bleed:
        current = params.ink_bleed
        params = replace(params, ink_bleed=InkBleedSettings(
            enabled=bool(bleed.get('enabled', current.enabled)),
            amount=float(bleed.get('amount', current.amount)),
            roughness=float(bleed.get('roughness', current.roughness)),
        ))
    return params


def preset_from_params(params: RenderParams, name: str,
                       description: str = 'Custom preset') -> Dict[str, Any]:
    """Snapshot the reusable parts of ``params`` as a JSON-friendly preset."""
    preset: Dict[str, Any] = {'name': name.upper(), 'description': description}
    if params.gradient_enabled:
        preset['gradient'] = gradient_to_dict(params.gradient)
    else:
        preset['layers'] = [layer_to_dict(layer) for layer in params.layers]
    preset['ink_bleed'] = asdict(params.ink_bleed)
    return preset


def default_layer(index: int, palette: Optional[Dict[str, PaletteEntry]] = None) -> Layer:
    """
    The layer added at position ``index``: colors rotate through the inks and
    each new layer gets a steeper screen angle and a slightly larger offset.
    """
    keys = ink_keys(palette)
    return Layer(
        color_key=keys[index % len(keys)] if keys else 'black',
        dither_type=DitherMode.HALFTONE_CIRCLE,
        threshold=0.5,
        scale=8,
        angle=45 + index * 30,
        offset_x=index * 5,
        offset_y=index * 5,
        blend_mode=BlendMode.MULTIPLY,
        opacity=1.0,
    ).normalized()


def randomize_layers(rng: Optional[np.random.Generator] = None,
                     palette: Optional[Dict[str, PaletteEntry]] = None) -> List[Layer]:
    """Two random multiply layers with distinct inks and crossing screen angles."""
    if rng is None:
        rng = np.random.default_rng()
    keys = [str(k) for k in rng.permutation(ink_keys(palette))]
    layers = []
    for i, angle_base in enumerate((0, 45)):
        layers.append(Layer(
            color_key=keys[i % len(keys)],
            dither_type=RANDOM_ALGORITHMS[int(rng.integers(len(RANDOM_ALGORITHMS)))],
            threshold=0.45 + rng.random() * 0.2,
            scale=math.floor(6 + rng.random() * 6),
            angle=math.floor(angle_base + rng.random() * 45),
            offset_x=math.floor(-20 + rng.random() * 40),
            offset_y=math.floor(-20 + rng.random() * 40),
            blend_mode=BlendMode.MULTIPLY,
            opacity=0.9 + rng.random() * 0.1,
        ).normalized())
    return layers


# -------------------- Layer list edits --------------------
# All return a new tuple and leave the input alone; out-of-range requests are no-ops.

def add_layer(layers: Sequence[Layer],
              palette: Optional[Dict[str, PaletteEntry]] = None) -> Tuple[Layer, ...]:
    """Append ``default_layer(len(layers))`` while under MAX_LAYERS."""
    if len(layers) >= MAX_LAYERS:
        return tuple(layers)
    return tuple(layers) + (default_layer(len(layers), palette),)


def remove_layer(layers: Sequence[Layer], index: int) -> Tuple[Layer, ...]:
    """Drop the layer at ``index``; the last remaining layer is kept."""
    if len(layers) <= 1 or not 0 <= index < len(layers):
        return tuple(layers)
    return tuple(l for i, l in enumerate(layers) if i != index)


def duplicate_layer(layers: Sequence[Layer], index: int) -> Tuple[Layer, ...]:
    """Insert a copy of ``layers[index]`` right after it, while under MAX_LAYERS."""
    if len(layers) >= MAX_LAYERS or not 0 <= index < len(layers):
        return tuple(layers)
    layers = tuple(layers)
    return layers[:index + 1] + (replace(layers[index]),) + layers[index + 1:]


def move_layer(layers: Sequence[Layer], index: int, step: int) -> Tuple[Layer, ...]:
    """
    Swap ``layers[index]`` with its neighbour. ``step`` is -1 (up, composited
    earlier) or 1 (down); moving past either end does nothing.
    """
    target = index + step
    if abs(step) != 1 or not 0 <= index < len(layers) or not 0 <= target < len(layers):
        return tuple(layers)
    moved = list(layers)
    moved[index], moved[target] = moved[target], moved[index]
    return tuple(moved)


def add_gradient_stop(stops: Sequence[str], color_key: str = 'white') -> Tuple[str, ...]:
    """Insert ``color_key`` in the middle of the ramp; no-op at MAX_STOPS."""
    if len(stops) >= MAX_STOPS:
        return tuple(stops)
    middle = len(stops) // 2
    return tuple(stops[:middle]) + (color_key,) + tuple(stops[middle:])


def remove_gradient_stop(stops: Sequence[str], index: int) -> Tuple[str, ...]:
    """Drop the stop at ``index``; no-op at MIN_STOPS."""
    if len(stops) <= MIN_STOPS:
        return tuple(stops)
    return tuple(s for i, s in enumerate(stops) if i != index)


def preset_key(name: str) -> str:
    """Storage key for a preset name: lowercase, whitespace runs to underscores."""
    return re.sub(r'\s+', '_', name.strip().lower())
