import json

import numpy as np
import pytest
from PIL import Image

from bitmap_engine.buffer import PixelBuffer
from bitmap_engine.codec import (
    ImageFormat,
    decode,
    encode,
    format_for_path,
    read_image,
    save_buffer,
    sniff_format,
)
from bitmap_engine.errors import DecodeFailure, IOFailure


def _checker() -> PixelBuffer:
    array = np.zeros((4, 4, 4), dtype=np.uint8)
    array[::2, ::2] = (255, 255, 255, 255)
    array[1::2, 1::2] = (0, 128, 255, 128)
    return PixelBuffer.from_array(array)


def test_png_encoding_is_lossless():
    buffer = _checker()
    encoded = encode(buffer, ImageFormat.PNG)
    assert sniff_format(encoded) is ImageFormat.PNG
    assert decode(encoded).tobytes() == buffer.tobytes()


def test_jpeg_requires_quality_in_unit_range():
    buffer = _checker()
    with pytest.raises(ValueError):
        encode(buffer, ImageFormat.JPEG)
    with pytest.raises(ValueError):
        encode(buffer, ImageFormat.JPEG, 95)
    encoded = encode(buffer, "jpeg", 0.95)
    assert sniff_format(encoded) is ImageFormat.JPEG


def test_decode_rejects_garbage():
    with pytest.raises(DecodeFailure):
        decode(b"definitely not an image")


def test_decode_converts_to_rgba(tmp_path):
    path = tmp_path / "gray.png"
    Image.new("L", (3, 2), 90).save(path)
    buffer = read_image(path)
    assert buffer.size == (3, 2)
    assert buffer.pixels()[0, 0].tolist() == [90, 90, 90, 255]


def test_read_missing_file_raises_io_failure(tmp_path):
    with pytest.raises(IOFailure) as excinfo:
        read_image(tmp_path / "missing.png")
    assert excinfo.value.path == tmp_path / "missing.png"


@pytest.mark.parametrize(
    "name, expected",
    [("a.png", ImageFormat.PNG), ("b.JPG", ImageFormat.JPEG), ("c.jpeg", ImageFormat.JPEG), ("d.webp", ImageFormat.PNG)],
)
def test_format_for_path(name, expected):
    assert format_for_path(name) is expected


def test_save_buffer_creates_directories_and_metadata(tmp_path):
    destination = tmp_path / "nested" / "out.png"
    fmt = save_buffer(_checker(), destination, metadata={"source": "test"})
    assert fmt is ImageFormat.PNG
    with Image.open(destination) as image:
        assert json.loads(image.info["bitmap_engine_metadata"]) == {"source": "test"}


def test_save_buffer_writes_jpeg_by_suffix(tmp_path):
    destination = tmp_path / "out.jpg"
    assert save_buffer(_checker(), destination, quality=0.8) is ImageFormat.JPEG
    with Image.open(destination) as image:
        assert image.format == "JPEG"


def test_save_buffer_write_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_bytes(b"")
    with pytest.raises(IOFailure):
        save_buffer(_checker(), blocker / "out.png")
