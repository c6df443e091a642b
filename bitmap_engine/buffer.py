"""RGBA pixel buffers and rectangular regions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np
from PIL import Image

BYTES_PER_PIXEL = 4

BufferData = Union[bytearray, memoryview]


@dataclass(frozen=True)
class Region:
    """Rectangular sub-area of a buffer in integer image coordinates."""

    left: int
    top: int
    width: int
    height: int

    @classmethod
    def full(cls, width: int, height: int) -> "Region":
        return cls(0, 0, width, height)

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


class PixelBuffer:
    """Unpremultiplied RGBA pixels stored row-major, one byte per channel.

    ``data`` always holds exactly ``width * height * 4`` bytes. The numpy
    view returned by :meth:`pixels` shares memory with ``data`` so filters
    can operate in place.
    """

    def __init__(self, width: int, height: int, data: BufferData | bytes | None = None) -> None:
        if width < 0 or height < 0:
            raise ValueError(f"Invalid buffer dimensions {width}x{height}")
        expected = width * height * BYTES_PER_PIXEL
        if data is None:
            data = bytearray(expected)
        elif isinstance(data, bytes):
            data = bytearray(data)
        if len(data) != expected:
            raise ValueError(
                f"Pixel data holds {len(data)} bytes, expected {expected} for {width}x{height} RGBA"
            )
        self.width = width
        self.height = height
        self.data: BufferData = data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.width}x{self.height})"

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def byte_size(self) -> int:
        return self.width * self.height * BYTES_PER_PIXEL

    def pixels(self) -> np.ndarray:
        """Return a writable ``(height, width, 4)`` uint8 view of ``data``."""

        flat = np.frombuffer(self.data, dtype=np.uint8, count=self.byte_size)
        return flat.reshape(self.height, self.width, BYTES_PER_PIXEL)

    def region_view(self, region: Region | None = None) -> np.ndarray:
        """Return the view of ``region`` (the whole image when ``None``)."""

        pixels = self.pixels()
        if region is None:
            return pixels
        return pixels[region.top : region.bottom, region.left : region.right]

    def tobytes(self) -> bytes:
        return bytes(self.data)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, bytearray(self.data))

    def copy_into(self, target: "PixelBuffer") -> None:
        """Copy pixels into ``target`` which must have identical dimensions."""

        if target.size != self.size:
            raise ValueError(f"Cannot copy {self.size} pixels into {target.size} buffer")
        target.pixels()[...] = self.pixels()

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Build a buffer from an ``(h, w, 4)`` array; values are clipped to bytes."""

        if array.ndim != 3 or array.shape[2] != BYTES_PER_PIXEL:
            raise ValueError(f"Expected an (h, w, 4) array, got shape {array.shape}")
        height, width = array.shape[:2]
        data = np.ascontiguousarray(np.clip(array, 0, 255), dtype=np.uint8)
        return cls(width, height, bytearray(data.tobytes()))

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(image.width, image.height, bytearray(image.tobytes("raw", "RGBA")))

    @classmethod
    def filled(cls, width: int, height: int, color: tuple[int, int, int, int]) -> "PixelBuffer":
        buffer = cls(width, height)
        buffer.pixels()[...] = np.asarray(color, dtype=np.uint8)
        return buffer

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), bytes(self.data))
