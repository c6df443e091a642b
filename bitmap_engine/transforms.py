"""Geometric transforms producing new surfaces.

Sources are never modified. Every function accepts an optional
:class:`~bitmap_engine.pool.SurfacePool` to borrow the destination from.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from .buffer import PixelBuffer
from .pool import Surface, SurfacePool, new_surface

logger = logging.getLogger(__name__)

_LANCZOS_FILTER = getattr(getattr(Image, "Resampling", None), "LANCZOS", None) or Image.LANCZOS
_BICUBIC_FILTER = getattr(getattr(Image, "Resampling", None), "BICUBIC", None) or Image.BICUBIC
_AFFINE = Image.Transform.AFFINE

TRANSPARENT = (0, 0, 0, 0)


def _from_array(array: np.ndarray, pool: Optional[SurfacePool]) -> Surface:
    height, width = array.shape[:2]
    surface = new_surface(width, height, pool)
    surface.pixels()[...] = array
    return surface


def _from_image(image: Image.Image, pool: Optional[SurfacePool]) -> Surface:
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    surface = new_surface(image.width, image.height, pool)
    surface.pixels()[...] = np.asarray(image, dtype=np.uint8).reshape(image.height, image.width, 4)
    return surface


def to_surface(source: PixelBuffer, pool: Optional[SurfacePool] = None) -> Surface:
    """Copy ``source`` into a (possibly pooled) surface of the same size."""

    surface = new_surface(source.width, source.height, pool)
    source.copy_into(surface)
    return surface


def rotate(source: PixelBuffer, degrees: int, pool: Optional[SurfacePool] = None) -> Surface:
    """Rotate clockwise by a multiple of 90 degrees with exact index remapping."""

    if degrees % 90 != 0:
        raise ValueError(f"Orthogonal rotation requires a multiple of 90 degrees, got {degrees}")
    quarter_turns = (int(degrees) // 90) % 4
    # np.rot90 turns counter-clockwise for positive k.
    rotated = np.rot90(source.pixels(), k=-quarter_turns)
    return _from_array(rotated, pool)


def rotated_bounds(width: int, height: int, degrees: float) -> Tuple[int, int]:
    """Size of the canvas that holds a ``width`` x ``height`` image rotated by ``degrees``."""

    radians = math.radians(degrees)
    cos = abs(math.cos(radians))
    sin = abs(math.sin(radians))
    # Snap trig noise so exact quarter turns do not gain a row or column.
    return (
        math.ceil(round(width * cos + height * sin, 9)),
        math.ceil(round(width * sin + height * cos, 9)),
    )


def free_rotate(
    source: PixelBuffer,
    degrees: float,
    expand: bool = True,
    pool: Optional[SurfacePool] = None,
) -> Surface:
    """Rotate clockwise by an arbitrary angle about the destination centre.

    With ``expand`` the canvas grows to the rotated bounding box; otherwise the
    source dimensions are kept and the corners are clipped. Uncovered pixels
    are transparent.
    """

    if expand:
        out_width, out_height = rotated_bounds(source.width, source.height, degrees)
    else:
        out_width, out_height = source.width, source.height

    radians = math.radians(degrees)
    cos = math.cos(radians)
    sin = math.sin(radians)
    src_cx, src_cy = source.width / 2, source.height / 2
    dst_cx, dst_cy = out_width / 2, out_height / 2

    # Inverse mapping: destination pixel -> source pixel.
    matrix = (
        cos,
        sin,
        src_cx - cos * dst_cx - sin * dst_cy,
        -sin,
        cos,
        src_cy + sin * dst_cx - cos * dst_cy,
    )
    rotated = source.to_image().transform(
        (out_width, out_height),
        _AFFINE,
        matrix,
        resample=_BICUBIC_FILTER,
        fillcolor=TRANSPARENT,
    )
    logger.debug(
        "Free rotate %.2f° %sx%s -> %sx%s",
        degrees,
        source.width,
        source.height,
        out_width,
        out_height,
    )
    return _from_image(rotated, pool)


def flip_horizontal(source: PixelBuffer, pool: Optional[SurfacePool] = None) -> Surface:
    return _from_array(source.pixels()[:, ::-1], pool)


def flip_vertical(source: PixelBuffer, pool: Optional[SurfacePool] = None) -> Surface:
    return _from_array(source.pixels()[::-1, :], pool)


def resize(
    source: PixelBuffer,
    width: int,
    height: int,
    pool: Optional[SurfacePool] = None,
) -> Surface:
    """Resample to ``width`` x ``height`` with a Lanczos filter."""

    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid target size {width}x{height}")
    resized = source.to_image().resize((width, height), resample=_LANCZOS_FILTER)
    return _from_image(resized, pool)


def crop(
    source: PixelBuffer,
    left: int,
    top: int,
    width: int,
    height: int,
    pool: Optional[SurfacePool] = None,
) -> Surface:
    """Copy a sub-rectangle; coordinates must already be clamped to the source."""

    return _from_array(source.pixels()[top : top + height, left : left + width], pool)
