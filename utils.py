"""
Utility functions for moving rasters in and out of the render pipeline.
"""

import json
import logging
import os
from typing import Dict, Optional

import numpy as np
from PIL import Image

from palette import PaletteEntry, palette_from_hex_map
from pixel_buffer import PixelBuffer

__all__ = [
    # Functions
    'buffer_from_image',
    'buffer_to_image',
    'load_image_buffer',
    'save_buffer',
    'upscale_nearest',
    'validate_image_file',
    'get_image_info',
    'load_palette_file',
    # Constants
    'EXPORT_SCALES',
    'IMAGE_EXTENSIONS',
]

logger = logging.getLogger(__name__)

# Export resolutions: screen, print, large
EXPORT_SCALES = (1, 2, 4)

IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.bmp', '.tiff', '.webp'}


def buffer_from_image(image: Image.Image) -> PixelBuffer:
    """
    Convert a PIL image (any mode) to an RGBA PixelBuffer.

    Args:
        image: PIL Image

    Returns:
        PixelBuffer with the image's dimensions
    """
    if image.mode != 'RGBA':
        image = image.convert('RGBA')
    arr = np.array(image, dtype=np.uint8).reshape((image.height, image.width, 4))
    return PixelBuffer(image.width, image.height, arr)


def buffer_to_image(buffer: PixelBuffer) -> Image.Image:
    """
    Convert a PixelBuffer to a PIL RGBA image.
    """
    return Image.fromarray(np.ascontiguousarray(buffer.pixels), 'RGBA')


def load_image_buffer(filepath: str) -> PixelBuffer:
    """
    Decode an image file into a PixelBuffer.

    Args:
        filepath: Path to image file

    Returns:
        PixelBuffer in RGBA
    """
    with Image.open(filepath) as img:
        return buffer_from_image(img)


def save_buffer(buffer: PixelBuffer, filepath: str, scale: int = 1):
    """
    Encode a buffer to disk, optionally upscaled for export.

    Args:
        buffer: Rendered buffer
        filepath: Output path; format follows the extension
        scale: Export multiplier (1, 2 or 4)
    """
    image = buffer_to_image(upscale_nearest(buffer, scale))
    if os.path.splitext(filepath)[1].lower() in ('.jpg', '.jpeg', '.bmp'):
        image = image.convert('RGB')
    image.save(filepath)


def upscale_nearest(buffer: PixelBuffer, factor: int) -> PixelBuffer:
    """
    Nearest-neighbor upscale by an integer factor (pixel replication).

    Args:
        buffer: Source buffer
        factor: Multiplier; values outside EXPORT_SCALES snap to the nearest one

    Returns:
        New buffer of size (width*factor, height*factor)
    """
    factor = min(EXPORT_SCALES, key=lambda s: abs(s - int(factor)))
    if buffer.is_empty:
        return PixelBuffer.new(buffer.width * factor, buffer.height * factor)
    if factor == 1:
        return buffer.copy()
    image = buffer_to_image(buffer)
    new_w, new_h = buffer.width * factor, buffer.height * factor
    return buffer_from_image(image.resize((new_w, new_h), Image.Resampling.NEAREST))


def validate_image_file(filepath: str) -> bool:
    """
    Check if file is a valid image file.

    Args:
        filepath: Path to image file

    Returns:
        True if valid image file
    """
    ext = os.path.splitext(filepath)[1].lower()
    return ext in IMAGE_EXTENSIONS and os.path.exists(filepath)


def get_image_info(filepath: str) -> Optional[Dict]:
    """
    Get basic image information.

    Args:
        filepath: Path to image file

    Returns:
        Dictionary with width, height, mode, format; None if the file can't be read
    """
    try:
        with Image.open(filepath) as img:
            return {
                'width': img.width,
                'height': img.height,
                'mode': img.mode,
                'format': img.format
            }
    except OSError as e:
        logger.error(f"Error getting image info: {e}")
        return None


def load_palette_file(filepath: str) -> Dict[str, PaletteEntry]:
    """
    Load a palette table from JSON.

    The file maps keys to entries: ``{"horizon": {"name": "Horizon", "hex": "#0062FF"}}``.
    A bare hex string is accepted as the entry, with the key as its name.

    Raises:
        ValueError: If the file is not a JSON object or a color is not valid hex
    """
    with open(filepath, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Palette file must contain a JSON object: {filepath}")
    colors = {}
    for key, entry in data.items():
        if isinstance(entry, str):
            colors[key] = (key.title(), entry)
        elif isinstance(entry, dict) and 'hex' in entry:
            colors[key] = (entry.get('name', key.title()), entry['hex'])
        else:
            raise ValueError(f"Palette entry '{key}' has no hex color")
    return palette_from_hex_map(colors)
