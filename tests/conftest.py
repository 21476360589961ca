import numpy as np
import pytest
from PIL import Image

from pixel_buffer import PixelBuffer


@pytest.fixture
def solid():
    """Factory for a single-color opaque buffer."""
    def _solid(width, height, value=(128, 128, 128)):
        if isinstance(value, int):
            value = (value, value, value)
        return PixelBuffer.new(width, height, tuple(value) + (255,))
    return _solid


@pytest.fixture
def ramp():
    """Factory for a horizontal gray ramp, black on the left to white on the right."""
    def _ramp(width, height):
        row = np.linspace(0, 255, width).round().astype(np.uint8)
        gray = np.tile(row, (height, 1))
        return PixelBuffer.from_array(np.stack([gray, gray, gray], axis=-1))
    return _ramp


@pytest.fixture
def image_file(tmp_path):
    """A small gray PNG on disk."""
    path = tmp_path / "input.png"
    Image.new("RGB", (16, 12), (90, 90, 90)).save(path)
    return path
