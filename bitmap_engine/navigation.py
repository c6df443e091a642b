"""Sorted sibling-image listing and next/previous navigation."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from .errors import IOFailure
from .formatting import format_position

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: Tuple[str, ...] = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp")

_DIGITS = re.compile(r"(\d+)")

ReadDir = Callable[[str], Iterable[str]]


def natural_sort_key(name: str) -> Tuple:
    """Case-insensitive key where runs of digits compare numerically."""

    parts = []
    for part in _DIGITS.split(name):
        if part.isdecimal():
            parts.append((0, int(part), ""))
        elif part:
            parts.append((1, 0, part.casefold()))
    return tuple(parts)


def _same_path(a: str, b: str) -> bool:
    return os.path.normcase(os.path.normpath(a)) == os.path.normcase(os.path.normpath(b))


@dataclass
class NavigationState:
    """File list of one directory and the position of the current file in it."""

    directory: Optional[str] = None
    files: List[str] = field(default_factory=list)
    current_index: int = -1

    @property
    def total(self) -> int:
        return len(self.files)


class ImageNavigator:
    """Lists sibling images and answers adjacency queries.

    The sorted listing is cached per directory; the current index is
    recomputed on every call against the supplied path.
    """

    def __init__(
        self,
        *,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        readdir: ReadDir = os.listdir,
        cycle: bool = True,
    ) -> None:
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.cycle = cycle
        self._readdir = readdir
        self._cache = NavigationState()

    def _matches(self, name: str) -> bool:
        return os.path.splitext(name)[1].lower() in self.extensions

    def _index_of(self, files: List[str], current_path: str) -> int:
        for index, candidate in enumerate(files):
            if _same_path(candidate, current_path):
                return index
        return -1

    def get_file_list(self, current_path: Path | str) -> NavigationState:
        current = os.fspath(current_path)
        directory = os.path.dirname(current)

        if self._cache.directory == directory and self._cache.files:
            self._cache.current_index = self._index_of(self._cache.files, current)
            return self._cache

        try:
            entries = list(self._readdir(directory or os.curdir))
        except OSError as exc:
            self.invalidate_cache()
            raise IOFailure(f"Error reading directory: {exc.strerror or exc}", directory) from exc

        names = sorted((name for name in entries if self._matches(name)), key=natural_sort_key)
        files = [os.path.join(directory, name) for name in names]
        self._cache = NavigationState(directory, files, self._index_of(files, current))
        logger.debug("Listed %d images in %s", len(files), directory)
        return self._cache

    def invalidate_cache(self) -> None:
        self._cache = NavigationState()

    def invalidate_directory(self, directory: Path | str) -> None:
        """Drop the cached listing if it belongs to ``directory``."""

        if self._cache.directory is not None and _same_path(self._cache.directory, os.fspath(directory)):
            self.invalidate_cache()

    def _adjacent_index(self, state: NavigationState, direction: int) -> Optional[int]:
        if not state.files or state.current_index == -1:
            return None
        index = state.current_index + direction
        if index < 0:
            return len(state.files) - 1 if self.cycle else None
        if index >= len(state.files):
            return 0 if self.cycle else None
        return index

    def adjacent(self, current_path: Path | str, direction: int) -> Optional[str]:
        state = self.get_file_list(current_path)
        index = self._adjacent_index(state, direction)
        return state.files[index] if index is not None else None

    def next_image(self, current_path: Path | str) -> Optional[str]:
        return self.adjacent(current_path, 1)

    def previous_image(self, current_path: Path | str) -> Optional[str]:
        return self.adjacent(current_path, -1)

    def adjacent_paths(self, current_path: Path | str) -> List[str]:
        """Distinct next/previous paths, excluding the current file itself."""

        state = self.get_file_list(current_path)
        result: List[str] = []
        for direction in (1, -1):
            index = self._adjacent_index(state, direction)
            if index is None or index == state.current_index:
                continue
            candidate = state.files[index]
            if candidate not in result:
                result.append(candidate)
        return result

    def first_image(self, current_path: Path | str) -> Optional[str]:
        state = self.get_file_list(current_path)
        return state.files[0] if state.files else None

    def last_image(self, current_path: Path | str) -> Optional[str]:
        state = self.get_file_list(current_path)
        return state.files[-1] if state.files else None

    def is_at_start(self, current_path: Path | str) -> bool:
        state = self.get_file_list(current_path)
        return bool(state.files) and state.current_index == 0

    def is_at_end(self, current_path: Path | str) -> bool:
        state = self.get_file_list(current_path)
        return bool(state.files) and state.current_index == len(state.files) - 1

    def position(self, current_path: Path | str) -> Optional[Tuple[int, int]]:
        state = self.get_file_list(current_path)
        if state.current_index >= 0 and state.files:
            return (state.current_index + 1, len(state.files))
        return None

    def position_info(self, current_path: Path | str) -> Optional[str]:
        position = self.position(current_path)
        if position is None:
            return None
        return format_position(*position)
