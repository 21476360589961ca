"""
Ink palette table and color conversion helpers.

The palette is read-only configuration: layers and gradient stops refer to
entries by key.
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

__all__ = [
    'PaletteEntry',
    'DEFAULT_PALETTE',
    'hex_to_rgb',
    'rgb_to_hex',
    'palette_from_hex_map',
    'resolve_color',
    'ink_keys',
]

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


class PaletteEntry(NamedTuple):
    key: str
    name: str
    hex: str
    rgb: RGB


def hex_to_rgb(hex_color: str) -> RGB:
    """
    Convert hex color string to RGB tuple.

    Args:
        hex_color: Hex string like "#FF0000", "FF0000" or the short form "#F00"

    Returns:
        RGB tuple (r, g, b)

    Raises:
        ValueError: If the string is not a valid hex color
    """
    hex_color = hex_color.strip().lstrip('#')
    if len(hex_color) == 3:
        hex_color = ''.join(c * 2 for c in hex_color)
    if len(hex_color) != 6:
        raise ValueError(f"Invalid hex code: {hex_color}")
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def rgb_to_hex(rgb: RGB) -> str:
    """
    Convert RGB tuple to hex color string.

    Args:
        rgb: RGB tuple (r, g, b)

    Returns:
        Hex string like "#ff0000"
    """
    return f'#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}'


def palette_from_hex_map(colors: Dict[str, Tuple[str, str]]) -> Dict[str, PaletteEntry]:
    """
    Build a palette table from ``{key: (display_name, hex)}``.
    """
    return {
        key: PaletteEntry(key, name, hex_code.upper(), hex_to_rgb(hex_code))
        for key, (name, hex_code) in colors.items()
    }


DEFAULT_PALETTE: Dict[str, PaletteEntry] = palette_from_hex_map({
    'horizon': ('Horizon', '#0062FF'),
    'hearth': ('Hearth', '#430E0A'),
    'festival': ('Festival', '#E9280A'),
    'rooted': ('Rooted', '#11533B'),
    'threshold': ('Threshold', '#C7A95A'),
    'white': ('White', '#FFFFFF'),
    'black': ('Black', '#000000'),
})


def resolve_color(key: str, palette: Optional[Dict[str, PaletteEntry]] = None) -> RGB:
    """
    RGB triple for a palette key. Unknown keys resolve to black.
    """
    table = DEFAULT_PALETTE if palette is None else palette
    entry = table.get(key)
    if entry is None:
        logger.warning("Unknown palette color '%s', using black", key)
        return (0, 0, 0)
    return tuple(entry.rgb)


def ink_keys(palette: Optional[Dict[str, PaletteEntry]] = None) -> List[str]:
    """Keys of the colored inks (everything except plain white and black)."""
    table = DEFAULT_PALETTE if palette is None else palette
    return [k for k in table if k not in ('white', 'black')]
