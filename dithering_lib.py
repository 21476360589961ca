"""
Dithering strategies for the screen-print pipeline: ordered (Bayer), error
diffusion, rotated halftone screens and seeded stipple noise.

Every strategy turns a continuous-tone PixelBuffer into a grayscale "ink mask"
of the same size (black = full ink, white = paper, grays = anti-aliased edge
coverage). Use ``dither()`` as the single entry point; it resolves the mode,
looks up which of threshold/scale/angle the algorithm consumes and calls the
matching strategy.
"""

import logging
import math
from enum import Enum
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from pixel_buffer import PixelBuffer, clamp, round_half_up

logger = logging.getLogger(__name__)

# -------------------- Enumerations --------------------

class DitherMode(Enum):
    NONE = "none"
    BAYER2x2 = "bayer2x2"
    BAYER4x4 = "bayer4x4"
    BAYER8x8 = "bayer8x8"
    FLOYD_STEINBERG = "floyd_steinberg"
    ATKINSON = "atkinson"
    HALFTONE_CIRCLE = "halftone_circle"
    HALFTONE_LINES = "halftone_lines"
    HALFTONE_SQUARE = "halftone_square"
    NOISE = "noise"

    @classmethod
    def parse(cls, value) -> 'DitherMode':
        """
        Resolve a mode from an enum member or an id string. Ids are matched
        ignoring case and underscores, so "floydSteinberg" and
        "floyd_steinberg" are the same mode. Unknown ids fall back to NONE.
        """
        if isinstance(value, cls):
            return value
        key = str(value).replace('_', '').replace('-', '').lower()
        for mode in cls:
            if mode.value.replace('_', '') == key:
                return mode
        logger.warning("Unknown dither type '%s', falling back to '%s'", value, cls.NONE.value)
        return cls.NONE


class DitherAlgorithmInfo(NamedTuple):
    label: str
    category: str
    has_scale: bool
    has_angle: bool
    default_scale: float
    default_angle: float
    description: str


ALGORITHMS: Dict[DitherMode, DitherAlgorithmInfo] = {
    DitherMode.NONE: DitherAlgorithmInfo(
        'NONE', 'none', False, False, 1, 0,
        'No dithering applied'),
    DitherMode.BAYER2x2: DitherAlgorithmInfo(
        'BAYER 2x2', 'ordered', True, False, 1, 0,
        'Small ordered pattern, creates a fine crosshatch texture'),
    DitherMode.BAYER4x4: DitherAlgorithmInfo(
        'BAYER 4x4', 'ordered', True, False, 1, 0,
        'Medium ordered pattern, classic retro computer look'),
    DitherMode.BAYER8x8: DitherAlgorithmInfo(
        'BAYER 8x8', 'ordered', True, False, 1, 0,
        'Large ordered pattern, smoother gradients with visible structure'),
    DitherMode.FLOYD_STEINBERG: DitherAlgorithmInfo(
        'FLOYD-STEINBERG', 'diffusion', True, False, 1, 0,
        'Classic error diffusion, natural-looking results'),
    DitherMode.ATKINSON: DitherAlgorithmInfo(
        'ATKINSON', 'diffusion', True, False, 1, 0,
        'Mac-style dithering, higher contrast, iconic look'),
    DitherMode.HALFTONE_CIRCLE: DitherAlgorithmInfo(
        'HALFTONE DOTS', 'halftone', True, True, 6, 15,
        'Traditional print dots, size varies with tone'),
    DitherMode.HALFTONE_LINES: DitherAlgorithmInfo(
        'HALFTONE LINES', 'halftone', True, True, 4, 45,
        'Engraving-style lines, width varies with tone'),
    DitherMode.HALFTONE_SQUARE: DitherAlgorithmInfo(
        'HALFTONE SQUARES', 'halftone', True, True, 6, 0,
        'Square dots for a more geometric look'),
    DitherMode.NOISE: DitherAlgorithmInfo(
        'NOISE/STIPPLE', 'other', True, False, 1, 0,
        'Random stipple pattern, organic texture'),
}

MAX_SCALE = 32
MAX_ANGLE = 180.0


def _threshold(value) -> float:
    return clamp(value, 0.0, 1.0, 0.5)


def _pixel_scale(value) -> int:
    return int(math.floor(clamp(value, 1, MAX_SCALE, 1)))


def _angle(value) -> float:
    return clamp(value, 0.0, MAX_ANGLE, 0.0)


def _mask_buffer(gray: np.ndarray, alpha: Optional[np.ndarray] = None) -> PixelBuffer:
    """Pack a 2D 0-255 ink mask into an RGBA buffer (gray replicated into RGB)."""
    h, w = gray.shape
    out = np.empty((h, w, 4), dtype=np.uint8)
    out[..., :3] = gray.astype(np.uint8)[..., None]
    out[..., 3] = 255 if alpha is None else alpha
    return PixelBuffer(w, h, out)


# -------------------- Base Classes for Dithering Strategies --------------------

class BaseDitherStrategy:
    """
    Base class for dithering strategies.
    Each strategy implements .dither(buffer, threshold, scale, angle) and
    returns a new buffer with the same dimensions as the input.
    """
    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 1, angle: float = 0) -> PixelBuffer:
        raise NotImplementedError


class NoDitherStrategy(BaseDitherStrategy):
    """
    No dithering at all; the tone-adjusted source passes through unchanged.
    """
    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 1, angle: float = 0) -> PixelBuffer:
        return buffer.copy()


# -------------------- Matrix-based Dithering (Bayer) --------------------

def _bayer(index_matrix: Sequence[Sequence[int]]) -> np.ndarray:
    m = np.array(index_matrix, dtype=np.float64)
    return m / m.size


class DitherUtils:
    """
    Normalized Bayer threshold matrices, values in [0, 1).
    """

    BAYER2x2 = _bayer([[0, 2], [3, 1]])

    BAYER4x4 = _bayer([
        [0, 8, 2, 10],
        [12, 4, 14, 6],
        [3, 11, 1, 9],
        [15, 7, 13, 5],
    ])

    BAYER8x8 = _bayer([
        [0, 32, 8, 40, 2, 34, 10, 42],
        [48, 16, 56, 24, 50, 18, 58, 26],
        [12, 44, 4, 36, 14, 46, 6, 38],
        [60, 28, 52, 20, 62, 30, 54, 22],
        [3, 35, 11, 43, 1, 33, 9, 41],
        [51, 19, 59, 27, 49, 17, 57, 25],
        [15, 47, 7, 39, 13, 45, 5, 37],
        [63, 31, 55, 23, 61, 29, 53, 21],
    ])

    @staticmethod
    def get_threshold_matrix(mode: DitherMode) -> np.ndarray:
        if mode == DitherMode.BAYER2x2:
            return DitherUtils.BAYER2x2
        elif mode == DitherMode.BAYER4x4:
            return DitherUtils.BAYER4x4
        elif mode == DitherMode.BAYER8x8:
            return DitherUtils.BAYER8x8
        else:
            raise ValueError(f"Unsupported matrix mode: {mode}")


class MatrixDitherStrategy(BaseDitherStrategy):
    """
    Ordered dithering against a tiled threshold matrix. ``scale`` blows every
    matrix cell up into a scale x scale block. Output is pure black/white;
    the source alpha is kept.
    """
    def __init__(self, threshold_matrix: np.ndarray):
        self.threshold_matrix = threshold_matrix

    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 1, angle: float = 0) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()
        h, w = buffer.height, buffer.width
        pixel_scale = _pixel_scale(scale)
        n = self.threshold_matrix.shape[0]

        gray = buffer.luminance() / 255
        mx = (np.arange(w) // pixel_scale) % n
        my = (np.arange(h) // pixel_scale) % n
        tiled = self.threshold_matrix[my[:, None], mx[None, :]]

        offset = (_threshold(threshold) - 0.5) * 0.8
        white = gray > (tiled + offset)

        out = buffer.pixels.copy()
        out[..., :3] = np.where(white, 255, 0).astype(np.uint8)[..., None]
        return PixelBuffer(w, h, out)


# -------------------- Error Diffusion (Floyd-Steinberg / Atkinson) --------------------

# (dx, dy, weight) relative to the current cell
FLOYD_STEINBERG_KERNEL = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
)

# 6/8 of the error is propagated; the remaining 2/8 is dropped for extra contrast
ATKINSON_KERNEL = (
    (1, 0, 1 / 8),
    (2, 0, 1 / 8),
    (-1, 1, 1 / 8),
    (0, 1, 1 / 8),
    (1, 1, 1 / 8),
    (0, 2, 1 / 8),
)


def block_average_luminance(buffer: PixelBuffer, pixel_scale: int) -> np.ndarray:
    """
    Average luminance of each pixel_scale x pixel_scale block, as a float32 grid
    of shape (ceil(h/scale), ceil(w/scale)). Partial edge blocks average only
    the pixels they contain.
    """
    h, w = buffer.height, buffer.width
    sh = -(-h // pixel_scale)
    sw = -(-w // pixel_scale)
    padded = np.zeros((sh * pixel_scale, sw * pixel_scale), dtype=np.float64)
    counts = np.zeros_like(padded)
    padded[:h, :w] = buffer.luminance()
    counts[:h, :w] = 1.0
    sums = padded.reshape(sh, pixel_scale, sw, pixel_scale).sum(axis=(1, 3))
    n = counts.reshape(sh, pixel_scale, sw, pixel_scale).sum(axis=(1, 3))
    return (sums / n).astype(np.float32)


def diffuse_error(gray: np.ndarray, threshold: float,
                  kernel: Sequence[Tuple[int, int, float]]) -> Tuple[np.ndarray, float]:
    """
    Binarize a luminance grid in a single row-major sweep, pushing each cell's
    quantization error onto its not-yet-visited neighbours.

    Args:
        gray: 2D luminance grid (0-255); not modified
        threshold: cells brighter than this become 255, others 0
        kernel: (dx, dy, weight) offsets, all pointing forward in scan order

    Returns:
        (binary float32 grid, total error that left the grid) -- the second
        value covers shares aimed outside the grid and any part of the error
        the kernel does not propagate, so sum(input) == sum(output) + dropped
        up to float32 rounding.
    """
    grid = np.array(gray, dtype=np.float32)
    sh, sw = grid.shape
    kept = sum(weight for _, _, weight in kernel)
    dropped = 0.0
    for y in range(sh):
        for x in range(sw):
            old = float(grid[y, x])
            new = 255.0 if old > threshold else 0.0
            grid[y, x] = new
            error = old - new
            if error == 0.0:
                continue
            dropped += error * (1.0 - kept)
            for dx, dy, weight in kernel:
                nx, ny = x + dx, y + dy
                if 0 <= nx < sw and ny < sh:
                    grid[ny, nx] = float(grid[ny, nx]) + error * weight
                else:
                    dropped += error * weight
    return grid, dropped


class ErrorDiffusionDitherStrategy(BaseDitherStrategy):
    """
    Error diffusion on a downsampled luminance grid. ``scale`` sets the block
    size; the decision threshold spans 80..180 as threshold goes 0..1.
    """
    def __init__(self, kernel: Sequence[Tuple[int, int, float]]):
        self.kernel = kernel

    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 1, angle: float = 0) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()
        pixel_scale = _pixel_scale(scale)
        gray = block_average_luminance(buffer, pixel_scale)
        binary, _ = diffuse_error(gray, 80 + _threshold(threshold) * 100, self.kernel)

        # nearest-neighbour upsample back to full resolution
        ys = np.arange(buffer.height) // pixel_scale
        xs = np.arange(buffer.width) // pixel_scale
        full = binary[ys[:, None], xs[None, :]]
        mask = np.where(full > 127, 255, 0)
        return _mask_buffer(mask, buffer.pixels[..., 3])


# -------------------- Halftone Dithering --------------------

def screen_centers(width: int, height: int, step: float,
                   angle: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Centers of a halftone screen rotated by ``angle`` degrees about the canvas
    center, keeping only dots that can touch the canvas (within one step of it).

    Grid coordinates run over [-2*max(w, h), 2*max(w, h)) in ``step``
    increments; coordinates whose rotated position is necessarily off-canvas
    are skipped up front.
    """
    rad = angle * math.pi / 180
    cos, sin = math.cos(rad), math.sin(rad)
    extent = max(width, height) * 2
    reach = math.hypot(width / 2 + step, height / 2 + step) + step
    g = np.arange(-extent, extent, step, dtype=np.float64)
    g = g[np.abs(g) <= reach]
    gx, gy = np.meshgrid(g, g)
    cx = gx * cos - gy * sin + width / 2
    cy = gx * sin + gy * cos + height / 2
    keep = (cx >= -step) & (cx < width + step) & (cy >= -step) & (cy < height + step)
    return cx[keep], cy[keep]


def _sample_darkness(buffer: PixelBuffer, cx: np.ndarray, cy: np.ndarray) -> np.ndarray:
    """Darkness (1 - luminance) at the clamped nearest source pixel of each center."""
    sx = np.clip(round_half_up(cx), 0, buffer.width - 1).astype(np.intp)
    sy = np.clip(round_half_up(cy), 0, buffer.height - 1).astype(np.intp)
    gray = buffer.luminance()[sy, sx] / 255
    return np.maximum(0.0, 1 - gray)


class HalftoneDotStrategy(BaseDitherStrategy):
    """
    Print-style halftone: a rotated grid of round or square dots whose size
    follows the local darkness. Dot extent grows with sqrt(darkness) so that
    inked *area* tracks darkness linearly. Each dot is drawn with a 0.7px
    anti-aliased rim; overlapping dots combine with min() so a dot never
    lightens ink laid down by its neighbour.
    """

    SHAPES = ('circle', 'square')

    def __init__(self, shape: str = 'circle'):
        if shape not in self.SHAPES:
            raise ValueError(f"Unsupported halftone shape: {shape}")
        self.shape = shape

    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 6, angle: float = 15) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()
        w, h = buffer.width, buffer.height
        threshold = _threshold(threshold)
        step = max(3, _pixel_scale(scale))
        rad = _angle(angle) * math.pi / 180
        cos, sin = math.cos(rad), math.sin(rad)

        canvas = np.full((h, w), 255.0)
        cx, cy = screen_centers(w, h, step, _angle(angle))
        darkness = _sample_darkness(buffer, cx, cy)

        if self.shape == 'circle':
            sizes = np.sqrt(darkness) * (step * 0.48) * (0.6 + threshold * 0.7)
            visible = sizes >= 0.5
        else:
            sizes = np.sqrt(darkness) * (step * 0.85) * (0.4 + threshold * 0.6) / 2
            visible = sizes >= 0.3

        for x_c, y_c, size in zip(cx[visible], cy[visible], sizes[visible]):
            extent = size + 1
            x0 = max(0, math.floor(x_c - extent))
            x1 = min(w - 1, math.ceil(x_c + extent))
            y0 = max(0, math.floor(y_c - extent))
            y1 = min(h - 1, math.ceil(y_c + extent))
            if x0 > x1 or y0 > y1:
                continue
            dx = (np.arange(x0, x1 + 1) - x_c)[None, :]
            dy = (np.arange(y0, y1 + 1) - y_c)[:, None]

            if self.shape == 'circle':
                edge = size - np.sqrt(dx * dx + dy * dy)
            else:
                rdx = dx * cos + dy * sin
                rdy = -dx * sin + dy * cos
                edge = -np.maximum(np.abs(rdx) - size, np.abs(rdy) - size)

            coverage = np.clip(edge + 0.7, 0.0, 1.0)
            value = round_half_up(255 * (1 - coverage))
            patch = canvas[y0:y1 + 1, x0:x1 + 1]
            np.minimum(patch, value, out=patch)

        return _mask_buffer(canvas)


class HalftoneLineStrategy(BaseDitherStrategy):
    """
    Engraving-style line screen. No discrete grid: each pixel measures its
    distance to the nearest line center along the rotated axis and is inked
    if that falls within the darkness-driven half width (plus a 0.7px soft edge).
    """
    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 4, angle: float = 45) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()
        w, h = buffer.width, buffer.height
        threshold = _threshold(threshold)
        spacing = max(3.0, clamp(scale, 1, MAX_SCALE, 4))
        rad = _angle(angle) * math.pi / 180
        cos, sin = math.cos(rad), math.sin(rad)

        gray = buffer.luminance() / 255
        xs = np.arange(w, dtype=np.float64)[None, :]
        ys = np.arange(h, dtype=np.float64)[:, None]
        rx = xs * cos + ys * sin
        line_pos = np.mod(rx, spacing)
        center_dist = np.abs(line_pos - spacing / 2)

        darkness = np.maximum(0.0, 1 - gray)
        half_width = np.sqrt(darkness) * (spacing * 0.7) * (0.5 + threshold * 0.7) / 2

        coverage = np.clip(half_width - center_dist + 0.7, 0.0, 1.0)
        canvas = np.where(center_dist <= half_width + 0.7,
                          round_half_up(255 * (1 - coverage)), 255.0)
        return _mask_buffer(canvas)


# -------------------- Noise / Stipple --------------------

def block_noise(block_x: np.ndarray, block_y: np.ndarray, blocks_per_row: int) -> np.ndarray:
    """
    Deterministic per-block noise in [0, 1): the fractional part of
    sin(seed) * 10000 with seed taken from the block coordinates.
    """
    seed = block_y * blocks_per_row + block_x + 0.5
    v = np.sin(seed) * 10000
    return v - np.floor(v)


class NoiseDitherStrategy(BaseDitherStrategy):
    """
    Stipple: threshold each pixel against a jittered cut-off. The jitter is a
    hash of the block coordinates, so the pattern is stable across calls.
    """

    NOISE_AMOUNT = 0.25

    def dither(self, buffer: PixelBuffer, threshold: float,
               scale: float = 1, angle: float = 0) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()
        h, w = buffer.height, buffer.width
        pixel_scale = _pixel_scale(scale)
        decision = 0.3 + (1 - _threshold(threshold)) * 0.4

        bx = (np.arange(w) // pixel_scale)[None, :]
        by = (np.arange(h) // pixel_scale)[:, None]
        noise = block_noise(bx, by, -(-w // pixel_scale))
        cutoff = decision + (noise - 0.5) * self.NOISE_AMOUNT

        white = buffer.luminance() / 255 > cutoff
        out = buffer.pixels.copy()
        out[..., :3] = np.where(white, 255, 0).astype(np.uint8)[..., None]
        return PixelBuffer(w, h, out)


# -------------------- Dispatch --------------------

def get_dither_strategy(mode: DitherMode) -> BaseDitherStrategy:
    if mode == DitherMode.NONE:
        return NoDitherStrategy()
    elif mode in (DitherMode.BAYER2x2, DitherMode.BAYER4x4, DitherMode.BAYER8x8):
        return MatrixDitherStrategy(DitherUtils.get_threshold_matrix(mode))
    elif mode == DitherMode.FLOYD_STEINBERG:
        return ErrorDiffusionDitherStrategy(FLOYD_STEINBERG_KERNEL)
    elif mode == DitherMode.ATKINSON:
        return ErrorDiffusionDitherStrategy(ATKINSON_KERNEL)
    elif mode == DitherMode.HALFTONE_CIRCLE:
        return HalftoneDotStrategy('circle')
    elif mode == DitherMode.HALFTONE_SQUARE:
        return HalftoneDotStrategy('square')
    elif mode == DitherMode.HALFTONE_LINES:
        return HalftoneLineStrategy()
    elif mode == DitherMode.NOISE:
        return NoiseDitherStrategy()
    else:
        raise ValueError(f"Unrecognized DitherMode: {mode}")


def dither(buffer: PixelBuffer, mode, threshold: float = 0.5,
           scale: Optional[float] = None, angle: Optional[float] = None) -> PixelBuffer:
    """
    Dither ``buffer`` with the given algorithm.

    Scale and angle are only forwarded to algorithms whose capability record
    declares them; otherwise (or when None) the algorithm default is used.
    Out-of-range values are clamped, unknown modes fall back to NONE.
    """
    mode = DitherMode.parse(mode)
    info = ALGORITHMS[mode]
    if not info.has_scale or scale is None:
        scale = info.default_scale
    if not info.has_angle or angle is None:
        angle = info.default_angle
    return get_dither_strategy(mode).dither(buffer, threshold, scale, angle)
