"""Reusable raster surfaces to avoid reallocation churn."""

from __future__ import annotations

import logging
import threading
from typing import List

import numpy as np

from .buffer import BYTES_PER_PIXEL, PixelBuffer

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 3

# Pooled surfaces larger than this factor of the request are not reused.
_OVERSIZE_FACTOR = 1.5


class Surface(PixelBuffer):
    """Pixel buffer backed by storage that may exceed its logical size."""

    def __init__(self, width: int, height: int) -> None:
        self._storage = bytearray(width * height * BYTES_PER_PIXEL)
        self.capacity_width = width
        self.capacity_height = height
        super().__init__(width, height, memoryview(self._storage))

    def resize(self, width: int, height: int) -> None:
        """Change the logical dimensions without touching the storage."""

        if width > self.capacity_width or height > self.capacity_height:
            raise ValueError(
                f"{width}x{height} exceeds surface capacity "
                f"{self.capacity_width}x{self.capacity_height}"
            )
        self.width = width
        self.height = height
        self.data = memoryview(self._storage)[: width * height * BYTES_PER_PIXEL]

    def clear(self) -> None:
        if self._storage:
            np.frombuffer(self._storage, dtype=np.uint8)[:] = 0

    def discard(self) -> None:
        """Drop the backing storage; the surface becomes 0x0."""

        self._storage = bytearray()
        self.capacity_width = self.capacity_height = 0
        self.width = self.height = 0
        self.data = memoryview(self._storage)


class SurfacePool:
    """Bounded pool of :class:`Surface` objects.

    The backing list is shared mutable state, so ``acquire``/``release``/
    ``clear`` are serialised with a lock.
    """

    def __init__(self, max_size: int = DEFAULT_POOL_SIZE) -> None:
        self.max_size = max_size
        self._pool: List[Surface] = []
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return len(self._pool)

    def acquire(self, width: int, height: int) -> Surface:
        with self._lock:
            for index, surface in enumerate(self._pool):
                if (
                    surface.capacity_width >= width
                    and surface.capacity_height >= height
                    and surface.capacity_width < width * _OVERSIZE_FACTOR
                    and surface.capacity_height < height * _OVERSIZE_FACTOR
                ):
                    del self._pool[index]
                    surface.resize(width, height)
                    logger.debug(
                        "Reusing pooled %sx%s surface for %sx%s",
                        surface.capacity_width,
                        surface.capacity_height,
                        width,
                        height,
                    )
                    return surface
        return Surface(width, height)

    def release(self, surface: Surface) -> None:
        with self._lock:
            if any(pooled is surface for pooled in self._pool):
                return
            if len(self._pool) < self.max_size:
                surface.clear()
                self._pool.append(surface)
                return
        surface.discard()

    def clear(self) -> None:
        with self._lock:
            pooled, self._pool = self._pool, []
        for surface in pooled:
            surface.discard()


def new_surface(width: int, height: int, pool: SurfacePool | None = None) -> Surface:
    """Borrow from ``pool`` when given, otherwise allocate directly."""

    if pool is not None:
        return pool.acquire(width, height)
    return Surface(width, height)
