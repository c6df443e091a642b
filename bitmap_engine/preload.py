"""Speculative decoding of the images next to the current one."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .buffer import PixelBuffer
from .codec import read_image
from .errors import DecodeFailure, IOFailure
from .loader import CancellationToken
from .viewport import AutoMode, compute_view_for_image

logger = logging.getLogger(__name__)

Reader = Callable[[Path], PixelBuffer]


def _key(path: Path | str) -> str:
    return os.path.normpath(os.fspath(path))


@dataclass
class PreloadEntry:
    """Decoded neighbour plus the view it will open with."""

    path: str
    image: PixelBuffer
    natural_width: int
    natural_height: int
    zoom: float
    translate_x: float
    translate_y: float
    auto_mode: AutoMode = False


@dataclass(frozen=True)
class _ViewContext:
    container_size: Tuple[float, float]
    auto_mode: AutoMode
    current_zoom: float
    zoom_limit: Optional[float]


class PreloadCache:
    """Holds decoded copies of at most the next and previous images.

    Every :meth:`update` evicts whatever is no longer adjacent. A decode that
    finishes after its path was evicted is discarded rather than inserted.
    """

    def __init__(
        self,
        reader: Reader = read_image,
        *,
        max_workers: int = 2,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._reader = reader
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="preload")
        self._lock = threading.Lock()
        self._entries: Dict[str, PreloadEntry] = {}
        self._pending: Dict[str, Tuple[Future, CancellationToken]] = {}
        self._wanted: Set[str] = set()

    @property
    def paths(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    @property
    def pending_paths(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def get(self, path: Path | str) -> Optional[PreloadEntry]:
        with self._lock:
            return self._entries.get(_key(path))

    def pop(self, path: Path | str) -> Optional[PreloadEntry]:
        with self._lock:
            return self._entries.pop(_key(path), None)

    def update(
        self,
        adjacent: Sequence[Path | str],
        *,
        container_size: Tuple[float, float],
        auto_mode: AutoMode,
        current_zoom: float,
        zoom_limit: Optional[float] = 1.0,
    ) -> List[Future]:
        """Keep only ``adjacent`` paths cached and start decoding missing ones."""

        context = _ViewContext(tuple(container_size), auto_mode, current_zoom, zoom_limit)
        wanted = [_key(path) for path in adjacent]
        submitted: List[Future] = []
        with self._lock:
            self._wanted = set(wanted)
            for key in list(self._entries):
                if key not in self._wanted:
                    del self._entries[key]
                    logger.debug("Evicted preloaded %s", key)
            for key in list(self._pending):
                if key not in self._wanted:
                    _future, token = self._pending.pop(key)
                    token.cancel()
                    logger.debug("Cancelled preload of %s", key)
            for key in wanted:
                if key in self._entries or key in self._pending:
                    continue
                token = CancellationToken()
                future = self._executor.submit(self._decode, key, token, context)
                self._pending[key] = (future, token)
                submitted.append(future)
        return submitted

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until in-flight decodes finish (tests and shutdown)."""

        with self._lock:
            futures = [future for future, _token in self._pending.values()]
        if futures:
            wait(futures, timeout=timeout)

    def clear(self) -> None:
        with self._lock:
            for _future, token in self._pending.values():
                token.cancel()
            self._pending.clear()
            self._entries.clear()
            self._wanted = set()

    def shutdown(self) -> None:
        self.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _finish(self, key: str, token: CancellationToken) -> None:
        pending = self._pending.get(key)
        if pending is not None and pending[1] is token:
            del self._pending[key]

    def _decode(self, key: str, token: CancellationToken, context: _ViewContext) -> Optional[PreloadEntry]:
        try:
            if token.cancelled:
                return None
            try:
                image = self._reader(Path(key))
            except (DecodeFailure, IOFailure) as exc:
                logger.warning("Failed to preload %s: %s", key, exc)
                return None
            if token.cancelled:
                logger.debug("Discarding preload of %s after decode", key)
                return None

            view = compute_view_for_image(
                image.width,
                image.height,
                context.container_size,
                auto_mode=context.auto_mode,
                current_zoom=context.current_zoom,
                zoom_limit=context.zoom_limit,
            )
            entry = PreloadEntry(
                path=key,
                image=image,
                natural_width=image.width,
                natural_height=image.height,
                zoom=view.zoom,
                translate_x=view.translate_x,
                translate_y=view.translate_y,
                auto_mode=context.auto_mode,
            )
            with self._lock:
                if token.cancelled or key not in self._wanted:
                    logger.debug("Discarding stale preload of %s", key)
                    return None
                self._entries[key] = entry
            logger.debug("Preloaded %s (%sx%s)", key, image.width, image.height)
            return entry
        finally:
            with self._lock:
                self._finish(key, token)
