"""Edit, history, view and navigation command flow for one open image."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Optional, Tuple

from . import filters, transforms
from .buffer import PixelBuffer, Region
from .codec import ImageFormat, decode, save_buffer
from .config import EngineConfig
from .errors import EngineError, HistoryExhausted, IOFailure, InvalidSelection
from .formatting import format_position
from .history import HistoryEntry, HistoryManager, ModifiedCallback
from .loader import ImageLoader, LoadResult
from .navigation import ImageNavigator
from .pool import Surface, SurfacePool
from .preload import PreloadCache
from .selection import (
    ENTIRE_IMAGE,
    NO_CONTENT,
    AutoSelectResult,
    SelectionArea,
    SelectionRect,
    auto_select_content,
    get_selection_area,
    get_visible_area,
    select_all,
)
from .viewport import ViewState, ZoomController, centered_translation, compute_view_for_image

logger = logging.getLogger(__name__)

_AUTO_SELECT_MESSAGES = {
    NO_CONTENT: "No content found to select.",
    ENTIRE_IMAGE: "Content fills the entire image.",
}


class EditorSession:
    """Owns the current image and routes edit commands through the engine.

    Every edit resolves its region first, so an invalid selection fails
    before any state changes. The initial history entry is captured lazily
    on the first edit after a load or save.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        navigator: Optional[ImageNavigator] = None,
        pool: Optional[SurfacePool] = None,
        history: Optional[HistoryManager] = None,
        loader: Optional[ImageLoader] = None,
        preload: Optional[PreloadCache] = None,
        container_size: Tuple[float, float] = (800, 600),
        on_modified_change: Optional[ModifiedCallback] = None,
    ) -> None:
        self.config = config or EngineConfig()
        cfg = self.config
        self.pool = pool or SurfacePool(cfg.pool_size)
        self.navigator = navigator or ImageNavigator(extensions=cfg.extensions, cycle=cfg.scroll_cycle)
        self.history = history or HistoryManager(
            max_history_size=cfg.max_history_size,
            large_image_max_size=cfg.large_image_max_history,
            large_image_threshold=cfg.large_image_threshold,
            jpeg_quality=cfg.jpeg_quality,
        )
        if on_modified_change is not None:
            self.history.on_modified_change = on_modified_change
        self.loader = loader or ImageLoader()
        self.preload = preload or PreloadCache(max_workers=cfg.preload_workers)
        self.zoom = ZoomController(levels=cfg.zoom_levels, min_zoom=cfg.min_zoom, max_zoom=cfg.max_zoom)
        self.zoom.enable_auto("fit")
        self.container_size: Tuple[float, float] = (float(container_size[0]), float(container_size[1]))

        self.buffer: Optional[PixelBuffer] = None
        self.path: Optional[Path] = None
        self.file_size = 0
        self.selection: Optional[SelectionRect] = None
        self._requested_path: Optional[Path] = None
        # True while ``buffer`` is a surface this session acquired from the pool.
        self._owns_buffer = False
        self._lock = threading.RLock()

    def __enter__(self) -> "EditorSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State

    @property
    def loaded(self) -> bool:
        return self.buffer is not None

    @property
    def view(self) -> ViewState:
        return self.zoom.state

    @property
    def is_modified(self) -> bool:
        return self.history.is_modified

    @property
    def history_position(self) -> Tuple[int, int]:
        return self.history.position()

    @property
    def on_modified_change(self) -> Optional[ModifiedCallback]:
        return self.history.on_modified_change

    @on_modified_change.setter
    def on_modified_change(self, callback: Optional[ModifiedCallback]) -> None:
        self.history.on_modified_change = callback

    def _require_buffer(self) -> PixelBuffer:
        if self.buffer is None:
            raise EngineError("Image not loaded")
        return self.buffer

    def _replace_buffer(self, buffer: PixelBuffer, *, owned: bool = False) -> None:
        previous, self.buffer = self.buffer, buffer
        if self._owns_buffer and isinstance(previous, Surface) and previous is not buffer:
            self.pool.release(previous)
        self._owns_buffer = owned

    # ------------------------------------------------------------------
    # Loading

    def open(self, path: Path | str) -> PixelBuffer:
        """Load ``path`` synchronously, preferring a preloaded decode."""

        path = Path(path)
        with self._lock:
            self.loader.cancel()
            self._requested_path = path
            entry = self.preload.pop(path)
            if entry is not None:
                logger.debug("Opening %s from preload cache", path)
                view = None
                if entry.auto_mode == self.zoom.auto_mode:
                    view = ViewState(entry.translate_x, entry.translate_y, entry.zoom, entry.auto_mode)
                self._apply_loaded(entry.image, path, _file_size(path), view)
                return entry.image

            try:
                raw = path.read_bytes()
            except OSError as exc:
                raise IOFailure(f"Failed to load image: {exc.strerror or exc}", path) from exc
            buffer = decode(raw)
            self._apply_loaded(buffer, path, len(raw))
            return buffer

    def reload(self) -> PixelBuffer:
        """Re-read the current file from disk, dropping unsaved edits."""

        with self._lock:
            if self.path is None:
                raise IOFailure("No file path to reload")
            return self.open(self.path)

    def open_async(self, path: Path | str) -> "Future[LoadResult]":
        """Load ``path`` on the loader thread; superseded loads change nothing.

        The result is applied under the session lock, so it waits for any
        edit in progress and never lands underneath one.
        """

        path = Path(path)
        with self._lock:
            self._requested_path = path
        applied: "Future[LoadResult]" = Future()

        def _done(future: "Future[LoadResult]") -> None:
            try:
                result = future.result()
            except BaseException as exc:
                applied.set_exception(exc)
                return
            if not result.cancelled and result.buffer is not None:
                with self._lock:
                    if self._requested_path != result.path:
                        logger.debug("Dropping load of %s; %s was requested since", result.path, self._requested_path)
                        result = LoadResult(result.path, cancelled=True)
                    else:
                        self._apply_loaded(result.buffer, result.path, result.file_size)
            applied.set_result(result)

        self.loader.load(path).add_done_callback(_done)
        return applied

    def load_buffer(self, buffer: PixelBuffer, path: Path | str | None = None) -> None:
        """Adopt an in-memory buffer as the current image."""

        path = Path(path) if path is not None else None
        with self._lock:
            self._requested_path = path
            self._apply_loaded(buffer, path, _file_size(path) if path is not None else buffer.byte_size)

    def _apply_loaded(
        self,
        buffer: PixelBuffer,
        path: Optional[Path],
        file_size: int,
        view: Optional[ViewState] = None,
    ) -> None:
        with self._lock:
            self._replace_buffer(buffer)
            self.path = path
            self.file_size = file_size
            self.selection = None
            self.history.reset()
            if view is not None:
                self.zoom.set_state(view)
            else:
                self._refit_view()
            logger.debug("Loaded %s (%sx%s)", path or "<memory>", buffer.width, buffer.height)
            self._update_preload()

    def _update_preload(self) -> None:
        if self.path is None:
            self.preload.clear()
            return
        try:
            adjacent = self.navigator.adjacent_paths(self.path)
        except IOFailure as exc:
            logger.warning("Cannot preload neighbours of %s: %s", self.path, exc)
            adjacent = []
        self.preload.update(
            adjacent,
            container_size=self.container_size,
            auto_mode=self.zoom.auto_mode,
            current_zoom=self.zoom.zoom,
            zoom_limit=self.config.zoom_limit,
        )

    # ------------------------------------------------------------------
    # Selection

    def set_selection(self, selection: Optional[SelectionRect]) -> None:
        self.selection = selection

    def clear_selection(self) -> None:
        self.selection = None

    def select_all(self) -> SelectionRect:
        with self._lock:
            buffer = self._require_buffer()
            self.selection = select_all(buffer.width, buffer.height)
            return self.selection

    def select_visible_area(self) -> SelectionRect:
        with self._lock:
            buffer = self._require_buffer()
            visible = get_visible_area(
                self.container_size[0], self.container_size[1], self.zoom.state, buffer.width, buffer.height
            )
            if visible is None:
                raise InvalidSelection("Image is not visible in the current viewport.")
            self.selection = visible
            return visible

    def auto_select(self, border_percent: float = 0) -> AutoSelectResult:
        with self._lock:
            buffer = self._require_buffer()
            result = auto_select_content(buffer, self.config.auto_select_tolerance, border_percent)
            if not result.success:
                raise InvalidSelection(
                    _AUTO_SELECT_MESSAGES.get(result.reason, "Auto-select failed."),
                    reason=result.reason,
                )
            self.selection = result.to_selection()
            return result

    def selection_area(self) -> SelectionArea:
        with self._lock:
            buffer = self._require_buffer()
            return get_selection_area(self.selection, buffer.width, buffer.height)

    # ------------------------------------------------------------------
    # Edits
    #
    # Edit and history methods hand back a copy of the new image; the live
    # buffer may be a pooled surface that is recycled by the next edit.

    def _save_history(self) -> None:
        self.history.save_state(self._require_buffer(), self.zoom.state)

    def _filter(self, apply: Callable[[PixelBuffer, Region], None], region: Region) -> PixelBuffer:
        with self._lock:
            source = self._require_buffer()
            self.history.ensure_initial_saved(self._save_history)
            working = transforms.to_surface(source, self.pool)
            try:
                apply(working, region)
            except BaseException:
                self.pool.release(working)
                raise
            self._replace_buffer(working, owned=True)
            self._save_history()
            return working.copy()

    def apply_filter(self, name: str, **params) -> PixelBuffer:
        """Run the registered filter ``name`` on the selection or whole image."""

        if name not in filters.FILTERS:
            raise ValueError(f"Unknown filter {name!r}")
        with self._lock:
            region = self.selection_area().region
            return self._filter(lambda buf, reg: filters.apply_filter(name, buf, reg, **params), region)

    def blur(self, level: float) -> PixelBuffer:
        return self.apply_filter("blur", radius=filters.blur_radius_for_level(level))

    def sharpen(self, strength: float) -> PixelBuffer:
        return self.apply_filter("sharpen", strength=strength)

    def grayscale(self) -> PixelBuffer:
        return self.apply_filter("grayscale")

    def invert(self) -> PixelBuffer:
        return self.apply_filter("invert")

    def sepia(self) -> PixelBuffer:
        return self.apply_filter("sepia")

    def brightness_contrast(self, brightness: float, contrast: float) -> PixelBuffer:
        return self.apply_filter("brightness-contrast", brightness=brightness, contrast=contrast)

    def saturation(self, saturation: float) -> PixelBuffer:
        return self.apply_filter("saturation", saturation=saturation)

    def hue_shift(self, shift: float) -> PixelBuffer:
        return self.apply_filter("hue-shift", shift=shift)

    def posterize(self, levels: int) -> PixelBuffer:
        return self.apply_filter("posterize", levels=levels)

    def auto_levels(self) -> PixelBuffer:
        """Stretch the selection's levels, or the whole image's when the selection is unusable."""

        with self._lock:
            buffer = self._require_buffer()
            try:
                region = self.selection_area().region
            except InvalidSelection:
                region = Region.full(buffer.width, buffer.height)
            return self._filter(filters.auto_levels, region)

    def _transform(self, produce: Callable[[PixelBuffer], Surface], *, anchor: Optional[Tuple[float, float]] = None) -> PixelBuffer:
        with self._lock:
            source = self._require_buffer()
            self.history.ensure_initial_saved(self._save_history)
            result = produce(source)
            self._replace_buffer(result, owned=True)
            self.selection = None
            self._refit_view(anchor)
            self._save_history()
            return result.copy()

    def rotate(self, degrees: int) -> PixelBuffer:
        if degrees % 90 != 0:
            raise ValueError(f"Orthogonal rotation requires a multiple of 90 degrees, got {degrees}")
        return self._transform(lambda src: transforms.rotate(src, degrees, self.pool))

    def free_rotate(self, degrees: float, expand: bool = True) -> PixelBuffer:
        return self._transform(lambda src: transforms.free_rotate(src, degrees, expand, self.pool))

    def flip_horizontal(self) -> PixelBuffer:
        return self._transform(lambda src: transforms.flip_horizontal(src, self.pool))

    def flip_vertical(self) -> PixelBuffer:
        return self._transform(lambda src: transforms.flip_vertical(src, self.pool))

    def resize(self, width: int, height: int) -> PixelBuffer:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid target size {width}x{height}")
        return self._transform(lambda src: transforms.resize(src, width, height, self.pool))

    def crop_to_selection(self) -> PixelBuffer:
        with self._lock:
            if self.selection is None:
                raise InvalidSelection("No selection to crop to.")
            area = self.selection_area()
            region = area.region
            self.history.update_current_state(self.zoom.state)
            view = self.zoom.state
            anchor = (
                view.translate_x + (region.left + region.width / 2) * view.zoom,
                view.translate_y + (region.top + region.height / 2) * view.zoom,
            )
            return self._transform(
                lambda src: transforms.crop(src, region.left, region.top, region.width, region.height, self.pool),
                anchor=anchor,
            )

    # ------------------------------------------------------------------
    # History

    def _restore_entry(self, entry: HistoryEntry) -> PixelBuffer:
        buffer = decode(entry.encoded_image)
        current = self.buffer
        if current is None or current.size != buffer.size:
            self.selection = None
        self._replace_buffer(buffer)
        self.zoom.set_state(entry.view_state)
        return buffer.copy()

    def undo(self) -> PixelBuffer:
        with self._lock:
            self._require_buffer()
            entry = self.history.undo()
            if entry is None:
                raise HistoryExhausted("undo")
            return self._restore_entry(entry)

    def redo(self) -> PixelBuffer:
        with self._lock:
            self._require_buffer()
            entry = self.history.redo()
            if entry is None:
                raise HistoryExhausted("redo")
            return self._restore_entry(entry)

    # ------------------------------------------------------------------
    # View

    def _refit_view(self, anchor: Optional[Tuple[float, float]] = None) -> ViewState:
        buffer = self._require_buffer()
        if self.zoom.auto_mode or anchor is None:
            state = compute_view_for_image(
                buffer.width,
                buffer.height,
                self.container_size,
                auto_mode=self.zoom.auto_mode,
                current_zoom=self.zoom.zoom,
                zoom_limit=self.config.zoom_limit,
            )
        else:
            zoom = self.zoom.zoom
            state = ViewState(
                anchor[0] - buffer.width * zoom / 2,
                anchor[1] - buffer.height * zoom / 2,
                zoom,
                False,
            )
        self.zoom.set_state(state)
        return self.zoom.state

    def _view_changed(self) -> ViewState:
        self.history.update_current_state(self.zoom.state)
        return self.zoom.state

    def set_container_size(self, width: float, height: float) -> ViewState:
        with self._lock:
            self.container_size = (float(width), float(height))
            if self.buffer is not None and self.zoom.auto_mode == "fit":
                self._refit_view()
                return self._view_changed()
            return self.zoom.state

    def zoom_in(self) -> ViewState:
        with self._lock:
            level = self.zoom.next_zoom_level()
            if level is not None:
                self.zoom.zoom_to_point(level, self.container_size[0] / 2, self.container_size[1] / 2)
            return self._view_changed()

    def zoom_out(self) -> ViewState:
        with self._lock:
            level = self.zoom.previous_zoom_level()
            if level is not None:
                self.zoom.zoom_to_point(level, self.container_size[0] / 2, self.container_size[1] / 2)
            return self._view_changed()

    def zoom_to_fit(self) -> ViewState:
        with self._lock:
            buffer = self._require_buffer()
            self.zoom.fit(buffer.width, buffer.height, self.container_size, self.config.zoom_limit)
            return self._view_changed()

    def reset_zoom(self) -> ViewState:
        """Show the image at 100%, centred."""

        with self._lock:
            buffer = self._require_buffer()
            translate_x, translate_y = centered_translation(
                buffer.width, buffer.height, self.container_size[0], self.container_size[1], 1.0
            )
            self.zoom.set_state(ViewState(translate_x, translate_y, 1.0, False))
            return self._view_changed()

    def center(self) -> ViewState:
        """Centre the image in the container at the current zoom."""

        with self._lock:
            buffer = self._require_buffer()
            self.zoom.center(buffer.width, buffer.height, self.container_size)
            return self._view_changed()

    def pan(self, dx: float, dy: float) -> ViewState:
        with self._lock:
            self.zoom.pan(dx, dy)
            return self._view_changed()

    # ------------------------------------------------------------------
    # Navigation

    def _navigate(self, target: Optional[str]) -> Optional[Path]:
        if target is None:
            return None
        with self._lock:
            # Navigation always returns to fit mode.
            self.zoom.enable_auto("fit")
            self.open(target)
            return self.path

    def next_image(self) -> Optional[Path]:
        if self.path is None:
            return None
        return self._navigate(self.navigator.next_image(self.path))

    def previous_image(self) -> Optional[Path]:
        if self.path is None:
            return None
        return self._navigate(self.navigator.previous_image(self.path))

    def first_image(self) -> Optional[Path]:
        if self.path is None:
            return None
        return self._navigate(self.navigator.first_image(self.path))

    def last_image(self) -> Optional[Path]:
        if self.path is None:
            return None
        return self._navigate(self.navigator.last_image(self.path))

    def position(self) -> Optional[Tuple[int, int]]:
        if self.path is None:
            return None
        return self.navigator.position(self.path)

    def position_info(self) -> Optional[str]:
        position = self.position()
        return format_position(*position) if position is not None else None

    # ------------------------------------------------------------------
    # Persistence

    def save(self, path: Path | str | None = None) -> ImageFormat:
        """Write the current image; a successful save becomes the new baseline."""

        with self._lock:
            buffer = self._require_buffer()
            destination = Path(path) if path is not None else self.path
            if destination is None:
                raise IOFailure("No file path to save to")
            fmt = save_buffer(buffer, destination, quality=self.config.jpeg_quality)
            self.path = destination
            self._requested_path = destination
            self.file_size = _file_size(destination)
            self.history.reset()
            self.navigator.invalidate_directory(destination.parent)
            logger.info("Saved %s", destination)
            return fmt

    def close(self) -> None:
        self.loader.shutdown()
        self.preload.shutdown()
        self.pool.clear()


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
