"""Bounded linear undo/redo history of encoded image snapshots."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from io import BytesIO
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from PIL import Image

from .buffer import PixelBuffer
from .codec import ImageFormat, encode, sniff_format
from .errors import DecodeFailure
from .viewport import ViewState

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50
DEFAULT_LARGE_IMAGE_MAX_HISTORY = 10
DEFAULT_LARGE_IMAGE_THRESHOLD = 2 * 1024 * 1024
LARGE_IMAGE_JPEG_QUALITY = 0.95

Encoder = Callable[[PixelBuffer, ImageFormat, Optional[float]], bytes]
ModifiedCallback = Callable[[bool], None]

# Legacy records are bare encoded images; versioned records are mappings.
HistoryRecord = Union[bytes, Mapping[str, Any], "HistoryEntry"]


@dataclass(frozen=True)
class HistoryEntry:
    """One undoable snapshot: encoded pixels plus the view at that time."""

    encoded_image: bytes
    format: ImageFormat
    view_state: ViewState
    width: int
    height: int

    @classmethod
    def from_record(cls, record: HistoryRecord) -> "HistoryEntry":
        """Normalise a stored record into an entry.

        Legacy records carry only the image bytes; their format and size are
        read from the image header and the view state defaults.
        """

        if isinstance(record, HistoryEntry):
            return record
        if isinstance(record, (bytes, bytearray, memoryview)):
            raw = bytes(record)
            fmt = sniff_format(raw)
            if fmt is None:
                raise DecodeFailure("Legacy history record is neither PNG nor JPEG")
            try:
                with Image.open(BytesIO(raw)) as image:
                    width, height = image.size
            except OSError as exc:
                raise DecodeFailure(f"Unreadable legacy history record: {exc}") from exc
            return cls(raw, fmt, ViewState(), width, height)
        if isinstance(record, Mapping):
            return cls(
                encoded_image=bytes(record["encoded_image"]),
                format=ImageFormat(record.get("format", ImageFormat.PNG.value)),
                view_state=ViewState.from_dict(record.get("view_state")),
                width=int(record["width"]),
                height=int(record["height"]),
            )
        raise TypeError(f"Unsupported history record type: {type(record).__name__}")

    def to_record(self) -> dict:
        return {
            "encoded_image": self.encoded_image,
            "format": self.format.value,
            "view_state": self.view_state.to_dict(),
            "width": self.width,
            "height": self.height,
        }


class HistoryManager:
    """Undo/redo stack with a cursor and size-aware compression.

    ``on_modified_change`` fires once per transition of :attr:`is_modified`.
    """

    def __init__(
        self,
        *,
        max_history_size: int = DEFAULT_MAX_HISTORY,
        large_image_max_size: int = DEFAULT_LARGE_IMAGE_MAX_HISTORY,
        large_image_threshold: int = DEFAULT_LARGE_IMAGE_THRESHOLD,
        jpeg_quality: float = LARGE_IMAGE_JPEG_QUALITY,
        on_modified_change: Optional[ModifiedCallback] = None,
        encoder: Encoder = encode,
    ) -> None:
        self.max_history_size = max_history_size
        self.large_image_max_size = large_image_max_size
        self.large_image_threshold = large_image_threshold
        self.jpeg_quality = jpeg_quality
        self.on_modified_change = on_modified_change
        self._encoder = encoder
        self._entries: List[HistoryEntry] = []
        self._cursor = -1
        self._needs_initial_save = True
        self._last_modified = False
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def is_modified(self) -> bool:
        return len(self._entries) > 1 and self._cursor > 0

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    @property
    def current(self) -> Optional[HistoryEntry]:
        if 0 <= self._cursor < len(self._entries):
            return self._entries[self._cursor]
        return None

    def position(self) -> Tuple[int, int]:
        return (self._cursor + 1, len(self._entries))

    def reset(self) -> None:
        """Forget all entries; the next edit captures a fresh initial state."""

        with self._lock:
            self._entries = []
            self._cursor = -1
            self._needs_initial_save = True
        self._emit_modified_if_changed()

    def ensure_initial_saved(self, save: Callable[[], Any]) -> None:
        """Run ``save`` for the first edit after a reset and never again."""

        with self._lock:
            if not self._needs_initial_save:
                return
            self._needs_initial_save = False
        save()

    def is_large(self, image_size: int) -> bool:
        return image_size > self.large_image_threshold

    def save_state(
        self,
        buffer: PixelBuffer,
        view_state: ViewState,
        image_size: Optional[int] = None,
    ) -> HistoryEntry:
        """Snapshot ``buffer`` and ``view_state`` as the newest entry.

        Images larger than the threshold (``image_size`` defaults to the raw
        buffer size) are stored as JPEG and use the smaller cap.
        """

        size = buffer.byte_size if image_size is None else image_size
        large = self.is_large(size)
        if large:
            encoded = self._encoder(buffer, ImageFormat.JPEG, self.jpeg_quality)
            fmt = ImageFormat.JPEG
        else:
            encoded = self._encoder(buffer, ImageFormat.PNG, None)
            fmt = ImageFormat.PNG
        entry = HistoryEntry(encoded, fmt, view_state, buffer.width, buffer.height)

        with self._lock:
            if self._cursor < len(self._entries) - 1:
                dropped = len(self._entries) - self._cursor - 1
                del self._entries[self._cursor + 1 :]
                logger.debug("Discarded %d redo entries", dropped)

            self._entries.append(entry)
            limit = self.large_image_max_size if large else self.max_history_size
            if len(self._entries) > limit:
                # Drop the oldest entries; the cursor stays on the new tail.
                del self._entries[: len(self._entries) - limit]
                self._cursor = len(self._entries) - 1
            else:
                self._cursor += 1
            logger.debug(
                "Saved %s history entry %d/%d (%d bytes)",
                fmt.value,
                self._cursor + 1,
                len(self._entries),
                len(encoded),
            )
        self._emit_modified_if_changed()
        return entry

    def update_current_state(self, view_state: ViewState) -> None:
        """Patch the view of the current entry without adding history."""

        with self._lock:
            entry = self.current
            if entry is None:
                return
            self._entries[self._cursor] = replace(entry, view_state=view_state)

    def undo(self) -> Optional[HistoryEntry]:
        with self._lock:
            if not self.can_undo:
                return None
            self._cursor -= 1
            entry = self._entries[self._cursor]
        self._emit_modified_if_changed()
        return entry

    def redo(self) -> Optional[HistoryEntry]:
        with self._lock:
            if not self.can_redo:
                return None
            self._cursor += 1
            entry = self._entries[self._cursor]
        self._emit_modified_if_changed()
        return entry

    def restore(self, records: Iterable[HistoryRecord], cursor: Optional[int] = None) -> None:
        """Replace the history with previously stored records."""

        entries = [HistoryEntry.from_record(record) for record in records]
        with self._lock:
            self._entries = entries
            if not entries:
                self._cursor = -1
            elif cursor is None:
                self._cursor = len(entries) - 1
            else:
                self._cursor = max(0, min(cursor, len(entries) - 1))
            self._needs_initial_save = not entries
        self._emit_modified_if_changed()

    def _emit_modified_if_changed(self) -> None:
        with self._lock:
            modified = self.is_modified
            if modified == self._last_modified:
                return
            self._last_modified = modified
        if self.on_modified_change is not None:
            self.on_modified_change(modified)
