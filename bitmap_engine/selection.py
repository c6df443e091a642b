"""Viewport/image coordinate mapping, selection areas and content detection."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .buffer import PixelBuffer, Region
from .errors import InvalidSelection
from .viewport import ViewState

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 30

NO_CONTENT = "no-content"
ENTIRE_IMAGE = "entire-image"

Point = Tuple[float, float]


def _js_round(value: float) -> int:
    return math.floor(value + 0.5)


def viewport_to_image(vx: float, vy: float, view: ViewState) -> Point:
    return ((vx - view.translate_x) / view.zoom, (vy - view.translate_y) / view.zoom)


def image_to_viewport(ix: float, iy: float, view: ViewState) -> Point:
    return (ix * view.zoom + view.translate_x, iy * view.zoom + view.translate_y)


@dataclass(frozen=True)
class SelectionRect:
    """Selection corners in unscaled image coordinates."""

    start: Point
    end: Point

    def normalized(self) -> "SelectionRect":
        (x1, y1), (x2, y2) = self.start, self.end
        return SelectionRect((min(x1, x2), min(y1, y2)), (max(x1, x2), max(y1, y2)))

    @property
    def width(self) -> float:
        return abs(self.end[0] - self.start[0])

    @property
    def height(self) -> float:
        return abs(self.end[1] - self.start[1])

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0


@dataclass(frozen=True)
class SelectionArea:
    """Region an edit applies to and whether it came from a user selection."""

    has_selection: bool
    region: Region


def get_selection_area(
    selection: Optional[SelectionRect],
    image_width: int,
    image_height: int,
) -> SelectionArea:
    """Resolve the target region of an edit.

    Without a selection the whole image is returned. A selection that has no
    area, either as drawn or once clamped to the image, raises
    :class:`InvalidSelection`.
    """

    if selection is None:
        return SelectionArea(False, Region.full(image_width, image_height))

    left = _js_round(min(selection.start[0], selection.end[0]))
    top = _js_round(min(selection.start[1], selection.end[1]))
    width = _js_round(selection.width)
    height = _js_round(selection.height)
    if width == 0 or height == 0:
        raise InvalidSelection("Selection has no area.")

    clamped_left = max(0, min(left, image_width))
    clamped_top = max(0, min(top, image_height))
    clamped_right = max(0, min(left + width, image_width))
    clamped_bottom = max(0, min(top + height, image_height))
    clamped = Region(
        clamped_left,
        clamped_top,
        clamped_right - clamped_left,
        clamped_bottom - clamped_top,
    )
    if clamped.is_empty:
        raise InvalidSelection("Selection lies outside the image.")
    return SelectionArea(True, clamped)


def select_all(image_width: int, image_height: int) -> SelectionRect:
    return SelectionRect((0, 0), (image_width - 1, image_height - 1))


def get_visible_area(
    container_width: float,
    container_height: float,
    view: ViewState,
    image_width: int,
    image_height: int,
) -> Optional[SelectionRect]:
    """Part of the image currently inside the viewport, or ``None``."""

    left, top = viewport_to_image(0, 0, view)
    right, bottom = viewport_to_image(container_width, container_height, view)

    left = max(0, min(left, image_width))
    top = max(0, min(top, image_height))
    right = max(0, min(right, image_width))
    bottom = max(0, min(bottom, image_height))

    if left >= right or top >= bottom:
        return None
    return SelectionRect((left, top), (right, bottom))


def selection_to_viewport(selection: SelectionRect, view: ViewState) -> Tuple[float, float, float, float]:
    """Overlay box ``(left, top, width, height)`` of ``selection`` in viewport pixels."""

    normalized = selection.normalized()
    left, top = image_to_viewport(normalized.start[0], normalized.start[1], view)
    return (left, top, normalized.width * view.zoom, normalized.height * view.zoom)


@dataclass(frozen=True)
class AutoSelectResult:
    success: bool
    reason: Optional[str] = None
    start: Optional[Point] = None
    end: Optional[Point] = None
    width: int = 0
    height: int = 0

    def to_selection(self) -> Optional[SelectionRect]:
        if not self.success or self.start is None or self.end is None:
            return None
        return SelectionRect(self.start, self.end)


def _first_true(mask: np.ndarray) -> Optional[int]:
    indices = np.flatnonzero(mask)
    return int(indices[0]) if indices.size else None


def _last_true(mask: np.ndarray) -> Optional[int]:
    indices = np.flatnonzero(mask)
    return int(indices[-1]) if indices.size else None


def auto_select_content(
    buffer: PixelBuffer,
    tolerance: float = DEFAULT_TOLERANCE,
    border_percent: float = 0,
) -> AutoSelectResult:
    """Find the bounding box of pixels that differ from the background.

    The background colour is the rounded mean of the four corner pixels. A
    pixel is content when its mean absolute RGBA difference from the
    background exceeds ``tolerance``.
    """

    width, height = buffer.width, buffer.height
    if width == 0 or height == 0:
        return AutoSelectResult(False, NO_CONTENT)
    pixels = buffer.pixels().astype(np.int16)

    corners = np.stack([pixels[0, 0], pixels[0, width - 1], pixels[height - 1, 0], pixels[height - 1, width - 1]])
    background = np.floor(corners.sum(axis=0) / 4 + 0.5)

    difference = np.abs(pixels - background).sum(axis=-1) / 4
    content = difference > tolerance

    rows = content.any(axis=1)
    columns = content.any(axis=0)
    top = _first_true(rows)
    bottom = _last_true(rows)
    left = _first_true(columns)
    right = _last_true(columns)
    top = 0 if top is None else top
    bottom = height - 1 if bottom is None else bottom
    left = 0 if left is None else left
    right = width - 1 if right is None else right

    if left >= right or top >= bottom:
        logger.debug("Auto-select found no content in %sx%s image", width, height)
        return AutoSelectResult(False, NO_CONTENT)

    if left == 0 and right == width - 1 and top == 0 and bottom == height - 1:
        logger.debug("Auto-select found no background border in %sx%s image", width, height)
        return AutoSelectResult(False, ENTIRE_IMAGE)

    if border_percent > 0:
        larger = max(right - left + 1, bottom - top + 1)
        border = _js_round(larger * border_percent / 100)
        left = max(0, left - border)
        right = min(width - 1, right + border)
        top = max(0, top - border)
        bottom = min(height - 1, bottom + border)

    return AutoSelectResult(
        True,
        start=(left, top),
        end=(right, bottom),
        width=right - left,
        height=bottom - top,
    )
