"""Configuration objects for the editing engine."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, Tuple

from .errors import IOFailure
from .history import (
    DEFAULT_LARGE_IMAGE_MAX_HISTORY,
    DEFAULT_LARGE_IMAGE_THRESHOLD,
    DEFAULT_MAX_HISTORY,
    LARGE_IMAGE_JPEG_QUALITY,
)
from .navigation import DEFAULT_EXTENSIONS
from .pool import DEFAULT_POOL_SIZE
from .selection import DEFAULT_TOLERANCE
from .viewport import DEFAULT_ZOOM_LEVELS, MAX_ZOOM, MIN_ZOOM

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Holds history limits, pool sizing, navigation and zoom options."""

    max_history_size: int = DEFAULT_MAX_HISTORY
    large_image_max_history: int = DEFAULT_LARGE_IMAGE_MAX_HISTORY
    large_image_threshold: int = DEFAULT_LARGE_IMAGE_THRESHOLD
    pool_size: int = DEFAULT_POOL_SIZE
    auto_select_tolerance: float = DEFAULT_TOLERANCE
    scroll_cycle: bool = True
    auto_zoom_limit: bool = True
    extensions: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_EXTENSIONS)
    preload_workers: int = 2
    zoom_levels: Tuple[float, ...] = field(default_factory=lambda: DEFAULT_ZOOM_LEVELS)
    min_zoom: float = MIN_ZOOM
    max_zoom: float = MAX_ZOOM
    jpeg_quality: float = LARGE_IMAGE_JPEG_QUALITY

    @property
    def zoom_limit(self) -> float | None:
        """Upper bound applied when fitting, ``None`` when unlimited."""

        return 1.0 if self.auto_zoom_limit else None

    def to_dict(self) -> Dict[str, object]:
        return {
            "max_history_size": self.max_history_size,
            "large_image_max_history": self.large_image_max_history,
            "large_image_threshold": self.large_image_threshold,
            "pool_size": self.pool_size,
            "auto_select_tolerance": self.auto_select_tolerance,
            "scroll_cycle": self.scroll_cycle,
            "auto_zoom_limit": self.auto_zoom_limit,
            "extensions": list(self.extensions),
            "preload_workers": self.preload_workers,
            "zoom_levels": list(self.zoom_levels),
            "min_zoom": self.min_zoom,
            "max_zoom": self.max_zoom,
            "jpeg_quality": self.jpeg_quality,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "EngineConfig":
        if not data:
            return cls()
        defaults = cls()
        return cls(
            max_history_size=_as_int(data.get("max_history_size"), defaults.max_history_size, minimum=1),
            large_image_max_history=_as_int(
                data.get("large_image_max_history"), defaults.large_image_max_history, minimum=1
            ),
            large_image_threshold=_as_int(data.get("large_image_threshold"), defaults.large_image_threshold, minimum=0),
            pool_size=_as_int(data.get("pool_size"), defaults.pool_size, minimum=0),
            auto_select_tolerance=_as_float(data.get("auto_select_tolerance"), defaults.auto_select_tolerance),
            scroll_cycle=_as_bool(data.get("scroll_cycle"), defaults.scroll_cycle),
            auto_zoom_limit=_as_bool(data.get("auto_zoom_limit"), defaults.auto_zoom_limit),
            extensions=_as_extensions(data.get("extensions"), defaults.extensions),
            preload_workers=_as_int(data.get("preload_workers"), defaults.preload_workers, minimum=1),
            zoom_levels=_as_levels(data.get("zoom_levels"), defaults.zoom_levels),
            min_zoom=_as_float(data.get("min_zoom"), defaults.min_zoom),
            max_zoom=_as_float(data.get("max_zoom"), defaults.max_zoom),
            jpeg_quality=_as_quality(data.get("jpeg_quality"), defaults.jpeg_quality),
        )


def _as_int(value: object, default: int, *, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        return default
    try:
        if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip()):
            result = int(value)
        else:
            return default
    except ValueError:
        return default
    if minimum is not None and result < minimum:
        return default
    return result


def _as_float(value: object, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _as_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _as_quality(value: object, default: float) -> float:
    quality = _as_float(value, default)
    if not 0.0 <= quality <= 1.0:
        return default
    return quality


def _as_extensions(value: object, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not isinstance(value, Sequence) or isinstance(value, str):
        return default
    extensions = []
    for item in value:
        if isinstance(item, str) and item.strip():
            ext = item.strip().lower()
            extensions.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(extensions) or default


def _as_levels(value: object, default: Tuple[float, ...]) -> Tuple[float, ...]:
    if not isinstance(value, Sequence) or isinstance(value, str):
        return default
    levels = sorted(
        float(item) for item in value if isinstance(item, (int, float)) and not isinstance(item, bool) and item > 0
    )
    return tuple(levels) or default


def load_config(path: Path | str) -> EngineConfig:
    """Read an :class:`EngineConfig` from a JSON file."""

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise IOFailure(f"Failed to read config: {exc.strerror or exc}", path) from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        logger.warning("Ignoring non-object config in %s", path)
        return EngineConfig()
    return EngineConfig.from_dict(data)
