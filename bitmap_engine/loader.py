"""Background loading of the current image with supersession."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .buffer import PixelBuffer
from .codec import decode
from .errors import Cancelled, DecodeFailure, IOFailure

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], PixelBuffer]


class CancellationToken:
    """Flag checked by workers between the stages of a load."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Load superseded")


@dataclass
class LoadResult:
    """Outcome of a load; ``cancelled`` results carry no buffer."""

    path: Optional[Path]
    buffer: Optional[PixelBuffer] = None
    cancelled: bool = False
    file_size: int = 0


class ImageLoader:
    """Decodes one image at a time; a new :meth:`load` supersedes the last."""

    def __init__(
        self,
        decoder: Decoder = decode,
        *,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._decoder = decoder
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="image-loader")
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None
        self._future: Optional[Future] = None

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return (
                self._token is not None
                and not self._token.cancelled
                and self._future is not None
                and not self._future.done()
            )

    def load(self, path: Path | str) -> "Future[LoadResult]":
        token = CancellationToken()
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            self._token = token
            self._future = self._executor.submit(self._run, Path(path), token)
            return self._future

    def cancel(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            self._token = None

    def shutdown(self) -> None:
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _run(self, path: Path, token: CancellationToken) -> LoadResult:
        try:
            token.raise_if_cancelled()
            try:
                raw = path.read_bytes()
            except OSError as exc:
                token.raise_if_cancelled()
                raise IOFailure(f"Failed to load image: {exc.strerror or exc}", path) from exc

            token.raise_if_cancelled()
            try:
                buffer = self._decoder(raw)
            except DecodeFailure:
                token.raise_if_cancelled()
                raise

            token.raise_if_cancelled()
        except Cancelled:
            logger.debug("Load of %s superseded", path)
            return LoadResult(path, cancelled=True)

        return LoadResult(path, buffer, False, len(raw))
