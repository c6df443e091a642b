"""Per-pixel colour adjustments and convolution filters.

Every filter mutates a rectangular region of a :class:`PixelBuffer` in place
and returns ``None``. The region is processed as if it were a standalone
image: blur edges clamp to the region, sharpen leaves the region border
untouched and auto levels gathers its statistics from the region only.

Written values follow 8-bit clamped-array semantics (clip to [0, 255], round
to nearest with ties to even). Where the formulas call for an explicit
rounding step the half-up variant ``floor(x + 0.5)`` is used.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional

import numpy as np

from .buffer import PixelBuffer, Region

logger = logging.getLogger(__name__)

# Empirical tuning constants carried over for output compatibility.
GAUSS_PASSES = 3
BLUR_LEVEL_SCALE = 2

BLUR_PRESETS: Dict[str, int] = {"light": 6, "medium": 12, "strong": 20}
SHARPEN_PRESETS: Dict[str, float] = {"light": 0.5, "medium": 1.0, "strong": 1.5}

LUMA_WEIGHTS = (0.299, 0.587, 0.114)
SEPIA_MATRIX = (
    (0.393, 0.769, 0.189),
    (0.349, 0.686, 0.168),
    (0.272, 0.534, 0.131),
)


def _round_half_up(values):
    return np.floor(values + 0.5)


def _store(view: np.ndarray, values: np.ndarray) -> None:
    view[...] = np.clip(np.rint(values), 0, 255)


def _channels(view: np.ndarray):
    rgb = view[..., :3].astype(np.float64)
    return rgb[..., 0], rgb[..., 1], rgb[..., 2]


def _luma(r, g, b):
    return LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b


# ---------------------------------------------------------------------------
# Blur


def blur_radius_for_level(level: float) -> float:
    """Convert a UI blur level into the Gaussian radius fed to the blur."""

    return level * BLUR_LEVEL_SCALE


def boxes_for_gauss(sigma: float, n: int = GAUSS_PASSES) -> List[int]:
    """Box widths whose successive application approximates a Gaussian.

    The first ``m`` passes use the odd width ``wl`` and the rest ``wl + 2``.
    """

    w_ideal = math.sqrt((12 * sigma * sigma) / n + 1)
    wl = math.floor(w_ideal)
    if wl % 2 == 0:
        wl -= 1
    wu = wl + 2

    m_ideal = (12 * sigma * sigma - n * wl * wl - 4 * n * wl - 3 * n) / (-4 * wl - 4)
    m = math.floor(m_ideal + 0.5)

    return [wl if index < m else wu for index in range(n)]


def _box_mean(values: np.ndarray, radius: int, axis: int) -> np.ndarray:
    pad_width = [(0, 0)] * values.ndim
    pad_width[axis] = (radius, radius)
    padded = np.pad(values, pad_width, mode="edge")

    cumulative = np.cumsum(padded, axis=axis)
    zero_shape = list(cumulative.shape)
    zero_shape[axis] = 1
    cumulative = np.concatenate([np.zeros(zero_shape), cumulative], axis=axis)

    size = 2 * radius + 1
    length = values.shape[axis]
    upper = np.take(cumulative, np.arange(size, size + length), axis=axis)
    lower = np.take(cumulative, np.arange(length), axis=axis)
    return (upper - lower) / size


def box_blur(pixels: np.ndarray, radius: int) -> None:
    """Horizontal then vertical box average over all four channels.

    Out-of-range samples replicate the nearest edge pixel. The horizontal
    result is quantised to bytes before the vertical pass.
    """

    if radius <= 0:
        return
    source = pixels.astype(np.float64)
    horizontal = np.clip(np.rint(_box_mean(source, radius, axis=1)), 0, 255)
    _store(pixels, _box_mean(horizontal, radius, axis=0))


def gaussian_blur(buffer: PixelBuffer, radius: float, region: Optional[Region] = None) -> None:
    view = buffer.region_view(region)
    boxes = boxes_for_gauss(radius, GAUSS_PASSES)
    logger.debug("Gaussian blur radius=%s boxes=%s on %sx%s", radius, boxes, view.shape[1], view.shape[0])
    for size in boxes:
        box_blur(view, (size - 1) // 2)


# ---------------------------------------------------------------------------
# Convolution


def sharpen(buffer: PixelBuffer, strength: float, region: Optional[Region] = None) -> None:
    """Apply ``[0,-s,0; -s,1+4s,-s; 0,-s,0]`` to the interior RGB pixels."""

    view = buffer.region_view(region)
    height, width = view.shape[:2]
    if height < 3 or width < 3:
        return

    rgb = view[..., :3].astype(np.float64)
    up = rgb[:-2, 1:-1]
    left = rgb[1:-1, :-2]
    center = rgb[1:-1, 1:-1]
    right = rgb[1:-1, 2:]
    down = rgb[2:, 1:-1]

    total = -strength * up
    total = total + -strength * left
    total = total + (1 + 4 * strength) * center
    total = total + -strength * right
    total = total + -strength * down

    _store(view[1:-1, 1:-1, :3], total)


# ---------------------------------------------------------------------------
# Colour adjustments


def grayscale(buffer: PixelBuffer, region: Optional[Region] = None) -> None:
    view = buffer.region_view(region)
    r, g, b = _channels(view)
    gray = _luma(r, g, b)
    _store(view[..., :3], np.repeat(gray[..., np.newaxis], 3, axis=-1))


def invert(buffer: PixelBuffer, region: Optional[Region] = None) -> None:
    view = buffer.region_view(region)
    view[..., :3] = 255 - view[..., :3]


def sepia(buffer: PixelBuffer, region: Optional[Region] = None) -> None:
    view = buffer.region_view(region)
    r, g, b = _channels(view)
    toned = np.stack(
        [np.minimum(255, r * row[0] + g * row[1] + b * row[2]) for row in SEPIA_MATRIX],
        axis=-1,
    )
    _store(view[..., :3], toned)


def contrast_factor(contrast: float) -> float:
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


def brightness_contrast(
    buffer: PixelBuffer,
    brightness: float,
    contrast: float,
    region: Optional[Region] = None,
) -> None:
    """Contrast first, then brightness; both take values in [-100, 100]."""

    view = buffer.region_view(region)
    factor = contrast_factor(contrast)
    values = view[..., :3].astype(np.float64)
    values = factor * (values - 128) + 128
    values = values + brightness * 2.55
    _store(view[..., :3], values)


def saturation(buffer: PixelBuffer, saturation: float, region: Optional[Region] = None) -> None:
    view = buffer.region_view(region)
    factor = (saturation + 100) / 100
    r, g, b = _channels(view)
    gray = _luma(r, g, b)
    adjusted = np.stack([gray + factor * (channel - gray) for channel in (r, g, b)], axis=-1)
    _store(view[..., :3], adjusted)


def _hue_to_rgb(p, q, t):
    t = np.where(t < 0, t + 1, t)
    t = np.where(t > 1, t - 1, t)
    return np.select(
        [t < 1 / 6, t < 1 / 2, t < 2 / 3],
        [p + (q - p) * 6 * t, q, p + (q - p) * (2 / 3 - t) * 6],
        default=p,
    )


def hue_shift(buffer: PixelBuffer, shift: float, region: Optional[Region] = None) -> None:
    """Rotate hue by ``shift`` degrees in HSL space."""

    view = buffer.region_view(region)
    r, g, b = (channel / 255 for channel in _channels(view))

    high = np.maximum(np.maximum(r, g), b)
    low = np.minimum(np.minimum(r, g), b)
    lightness = (high + low) / 2
    delta = high - low
    chromatic = delta != 0
    safe_delta = np.where(chromatic, delta, 1.0)

    sat_denominator = np.where(lightness > 0.5, 2 - high - low, high + low)
    sat = np.where(chromatic, delta / np.where(sat_denominator == 0, 1.0, sat_denominator), 0.0)

    hue = np.select(
        [high == r, high == g],
        [
            ((g - b) / safe_delta + np.where(g < b, 6, 0)) / 6,
            ((b - r) / safe_delta + 2) / 6,
        ],
        default=((r - g) / safe_delta + 4) / 6,
    )
    hue = np.where(chromatic, hue, 0.0)

    hue = np.fmod(hue + shift / 360, 1)
    hue = np.where(hue < 0, hue + 1, hue)

    q = np.where(lightness < 0.5, lightness * (1 + sat), lightness + sat - lightness * sat)
    p = 2 * lightness - q
    achromatic = sat == 0
    red = np.where(achromatic, lightness, _hue_to_rgb(p, q, hue + 1 / 3))
    green = np.where(achromatic, lightness, _hue_to_rgb(p, q, hue))
    blue = np.where(achromatic, lightness, _hue_to_rgb(p, q, hue - 1 / 3))

    shifted = np.stack([red, green, blue], axis=-1)
    _store(view[..., :3], _round_half_up(shifted * 255))


def posterize(buffer: PixelBuffer, levels: int, region: Optional[Region] = None) -> None:
    if levels < 2:
        raise ValueError(f"Posterize needs at least 2 levels, got {levels}")
    view = buffer.region_view(region)
    step = 255 / (levels - 1)
    values = view[..., :3].astype(np.float64)
    _store(view[..., :3], _round_half_up(_round_half_up(values / step) * step))


def auto_levels(buffer: PixelBuffer, region: Optional[Region] = None) -> None:
    """Stretch each RGB channel to span [0, 255]; flat channels are left alone."""

    view = buffer.region_view(region)
    for channel in range(3):
        values = view[..., channel]
        low = int(values.min())
        high = int(values.max())
        spread = high - low
        if spread <= 0:
            continue
        stretched = ((values.astype(np.float64) - low) * 255) / spread
        _store(values, stretched)


FilterFn = Callable[..., None]

FILTERS: Dict[str, FilterFn] = {
    "blur": gaussian_blur,
    "sharpen": sharpen,
    "grayscale": grayscale,
    "invert": invert,
    "sepia": sepia,
    "brightness-contrast": brightness_contrast,
    "saturation": saturation,
    "hue-shift": hue_shift,
    "posterize": posterize,
    "auto-levels": auto_levels,
}


def apply_filter(name: str, buffer: PixelBuffer, region: Optional[Region] = None, **params) -> None:
    """Dispatch to the filter registered as ``name``."""

    try:
        fn = FILTERS[name]
    except KeyError:
        raise ValueError(f"Unknown filter {name!r}; expected one of {', '.join(sorted(FILTERS))}") from None
    fn(buffer, region=region, **params)
