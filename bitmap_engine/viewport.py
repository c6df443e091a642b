"""Pan/zoom view state and zoom arithmetic."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

DEFAULT_ZOOM_LEVELS: Tuple[float, ...] = (0.05, 0.1, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 2, 3, 4, 5, 7.5, 10)
MIN_ZOOM = 0.001
MAX_ZOOM = 100.0

# ``False`` (manual), ``"fit"`` (zoom to fit) or ``"actual"`` (100%).
AutoMode = Union[bool, str]


@dataclass(frozen=True)
class ViewState:
    """Viewport placement of the image: ``viewport = image * zoom + translate``."""

    translate_x: float = 0.0
    translate_y: float = 0.0
    zoom: float = 1.0
    auto_mode: AutoMode = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "translate_x": self.translate_x,
            "translate_y": self.translate_y,
            "zoom": self.zoom,
            "auto_mode": self.auto_mode,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ViewState":
        if not data:
            return cls()
        return cls(
            translate_x=float(data.get("translate_x", data.get("translateX", 0.0))),
            translate_y=float(data.get("translate_y", data.get("translateY", 0.0))),
            zoom=float(data.get("zoom", 1.0)),
            auto_mode=data.get("auto_mode", data.get("auto", False)),
        )


def clamp_zoom(zoom: float, min_zoom: float = MIN_ZOOM, max_zoom: float = MAX_ZOOM) -> float:
    return min(max(zoom, min_zoom), max_zoom)


def zoom_to_fit(
    image_width: int,
    image_height: int,
    container_width: float,
    container_height: float,
    limit: Optional[float] = None,
) -> float:
    zoom = min(container_width / image_width, container_height / image_height)
    if limit:
        zoom = min(zoom, limit)
    return zoom


def centered_translation(
    image_width: int,
    image_height: int,
    container_width: float,
    container_height: float,
    zoom: float,
) -> Tuple[float, float]:
    return (
        (container_width - image_width * zoom) / 2,
        (container_height - image_height * zoom) / 2,
    )


def compute_view_for_image(
    image_width: int,
    image_height: int,
    container_size: Tuple[float, float],
    *,
    auto_mode: AutoMode,
    current_zoom: float,
    zoom_limit: Optional[float] = 1.0,
) -> ViewState:
    """View to use when an image of the given size replaces the current one.

    Auto modes fit the image to the container; manual mode keeps the current
    zoom. The image is centred either way.
    """

    container_width, container_height = container_size
    if auto_mode and image_width > 0 and image_height > 0:
        zoom = clamp_zoom(zoom_to_fit(image_width, image_height, container_width, container_height, zoom_limit))
    else:
        zoom = current_zoom
    translate_x, translate_y = centered_translation(
        image_width, image_height, container_width, container_height, zoom
    )
    return ViewState(translate_x, translate_y, zoom, auto_mode)


class ZoomController:
    """Holds the current :class:`ViewState` and steps through zoom levels."""

    def __init__(
        self,
        *,
        levels: Sequence[float] = DEFAULT_ZOOM_LEVELS,
        min_zoom: float = MIN_ZOOM,
        max_zoom: float = MAX_ZOOM,
    ) -> None:
        self.levels = tuple(levels)
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.state = ViewState()

    @property
    def zoom(self) -> float:
        return self.state.zoom

    @property
    def auto_mode(self) -> AutoMode:
        return self.state.auto_mode

    def set_state(self, state: ViewState) -> None:
        self.state = replace(state, zoom=clamp_zoom(state.zoom, self.min_zoom, self.max_zoom))

    def set_zoom(self, zoom: float) -> None:
        self.state = replace(self.state, zoom=clamp_zoom(zoom, self.min_zoom, self.max_zoom))

    def enable_auto(self, mode: AutoMode = "fit") -> None:
        self.state = replace(self.state, auto_mode=mode)

    def next_zoom_level(self) -> Optional[float]:
        for level in self.levels:
            if level > self.zoom:
                return level
        return None

    def previous_zoom_level(self) -> Optional[float]:
        for level in reversed(self.levels):
            if level < self.zoom:
                return level
        return None

    def zoom_to_point(self, new_zoom: float, point_x: float, point_y: float) -> ViewState:
        """Zoom keeping the image point under ``(point_x, point_y)`` fixed; disables auto mode."""

        image_x = (point_x - self.state.translate_x) / self.zoom
        image_y = (point_y - self.state.translate_y) / self.zoom
        zoom = clamp_zoom(new_zoom, self.min_zoom, self.max_zoom)
        self.state = ViewState(
            translate_x=point_x - image_x * zoom,
            translate_y=point_y - image_y * zoom,
            zoom=zoom,
            auto_mode=False,
        )
        return self.state

    def fit(
        self,
        image_width: int,
        image_height: int,
        container_size: Tuple[float, float],
        limit: Optional[float] = None,
    ) -> ViewState:
        self.state = compute_view_for_image(
            image_width,
            image_height,
            container_size,
            auto_mode="fit",
            current_zoom=self.zoom,
            zoom_limit=limit,
        )
        return self.state

    def center(self, image_width: int, image_height: int, container_size: Tuple[float, float]) -> ViewState:
        translate_x, translate_y = centered_translation(
            image_width, image_height, container_size[0], container_size[1], self.zoom
        )
        self.state = replace(self.state, translate_x=translate_x, translate_y=translate_y)
        return self.state

    def pan(self, dx: float, dy: float) -> ViewState:
        self.state = replace(
            self.state,
            translate_x=self.state.translate_x + dx,
            translate_y=self.state.translate_y + dy,
            auto_mode=False,
        )
        return self.state
