"""Encoding and decoding pixel buffers through Pillow."""

from __future__ import annotations

import json
import logging
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image, PngImagePlugin, UnidentifiedImageError

from .buffer import PixelBuffer
from .errors import DecodeFailure, IOFailure

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SIGNATURE = b"\xff\xd8\xff"

_JPEG_SUFFIXES = {".jpg", ".jpeg", ".jpe"}


class ImageFormat(str, Enum):
    """Compressed encodings used for history snapshots and saving."""

    PNG = "png"
    JPEG = "jpeg"

    @property
    def pillow_name(self) -> str:
        return "PNG" if self is ImageFormat.PNG else "JPEG"


def format_for_path(path: Path | str) -> ImageFormat:
    """JPEG for ``.jpg``-style suffixes, PNG for everything else."""

    if Path(path).suffix.lower() in _JPEG_SUFFIXES:
        return ImageFormat.JPEG
    return ImageFormat.PNG


def sniff_format(data: bytes) -> Optional[ImageFormat]:
    if data.startswith(PNG_SIGNATURE):
        return ImageFormat.PNG
    if data.startswith(JPEG_SIGNATURE):
        return ImageFormat.JPEG
    return None


def decode(data: bytes) -> PixelBuffer:
    """Decode compressed image bytes into an RGBA buffer."""

    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            return PixelBuffer.from_image(image)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise DecodeFailure(f"Unable to decode image data: {exc}") from exc


def encode(buffer: PixelBuffer, fmt: ImageFormat | str, quality: Optional[float] = None) -> bytes:
    """Encode ``buffer`` as PNG, or JPEG with ``quality`` in [0, 1].

    JPEG has no alpha channel; the alpha is discarded.
    """

    fmt = ImageFormat(fmt)
    image = buffer.to_image()
    output = BytesIO()
    if fmt is ImageFormat.JPEG:
        if quality is None or not 0.0 <= quality <= 1.0:
            raise ValueError(f"JPEG quality must be within [0, 1], got {quality!r}")
        image.convert("RGB").save(output, format="JPEG", quality=int(round(quality * 100)))
    else:
        image.save(output, format="PNG")
    return output.getvalue()


def read_image(path: Path | str) -> PixelBuffer:
    """Read and decode the image at ``path``."""

    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise IOFailure(f"Failed to read image: {exc.strerror or exc}", path) from exc
    return decode(raw)


def save_buffer(
    buffer: PixelBuffer,
    destination: Path | str,
    *,
    quality: float = 0.95,
    metadata: Optional[Dict[str, Any]] = None,
) -> ImageFormat:
    """Encode ``buffer`` according to the suffix of ``destination`` and write it.

    PNG output can carry a JSON ``metadata`` payload in a text chunk.
    """

    destination = Path(destination)
    fmt = format_for_path(destination)
    if fmt is ImageFormat.PNG and metadata:
        png_info = PngImagePlugin.PngInfo()
        png_info.add_text("bitmap_engine_metadata", json.dumps(metadata, ensure_ascii=False))
        output = BytesIO()
        buffer.to_image().save(output, format="PNG", pnginfo=png_info)
        payload = output.getvalue()
    else:
        payload = encode(buffer, fmt, quality if fmt is ImageFormat.JPEG else None)

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(payload)
    except OSError as exc:
        raise IOFailure(f"Failed to write image: {exc.strerror or exc}", destination) from exc
    logger.debug("Wrote %s (%s, %d bytes)", destination, fmt.value, len(payload))
    return fmt
