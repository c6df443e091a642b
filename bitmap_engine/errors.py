"""Exception types raised by the editing engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class EngineError(Exception):
    """Base class for recoverable, per-operation engine failures."""


class InvalidSelection(EngineError, ValueError):
    """The requested region has no area or lies outside the image.

    ``reason`` carries the auto-select failure code (``"no-content"`` or
    ``"entire-image"``) when the selection came from content detection.
    """

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason


class DecodeFailure(EngineError):
    """Image bytes are corrupt or in an unsupported format."""


class Cancelled(EngineError):
    """A load was superseded by a newer request."""


class IOFailure(EngineError, OSError):
    """Reading a directory or writing an image failed."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        base = super().__str__()
        if self.path is not None:
            return f"{base} ({self.path})"
        return base


class HistoryExhausted(EngineError):
    """Undo at the oldest entry or redo at the newest."""

    def __init__(self, direction: str) -> None:
        super().__init__(f"Nothing to {direction}")
        self.direction = direction
