import threading

import pytest

from bitmap_engine.codec import decode
from bitmap_engine.errors import DecodeFailure, IOFailure
from bitmap_engine.loader import CancellationToken, ImageLoader


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled
    token.cancel()
    assert token.cancelled


def test_load_decodes_file(tmp_path, write_png):
    path = write_png(tmp_path / "a.png", size=(5, 4))
    loader = ImageLoader()
    try:
        result = loader.load(path).result(timeout=10)
    finally:
        loader.shutdown()
    assert not result.cancelled
    assert result.path == path
    assert result.buffer.size == (5, 4)
    assert result.file_size == path.stat().st_size


def test_newer_load_supersedes_older(tmp_path, write_png):
    first_path = write_png(tmp_path / "first.png")
    second_path = write_png(tmp_path / "second.png", size=(2, 2))
    started = threading.Event()
    release = threading.Event()

    def slow_decoder(data):
        if not started.is_set():
            started.set()
            release.wait(timeout=10)
        return decode(data)

    loader = ImageLoader(decoder=slow_decoder)
    try:
        first = loader.load(first_path)
        assert started.wait(timeout=10)
        second = loader.load(second_path)
        release.set()
        first_result = first.result(timeout=10)
        second_result = second.result(timeout=10)
    finally:
        loader.shutdown()

    assert first_result.cancelled
    assert first_result.buffer is None
    assert not second_result.cancelled
    assert second_result.buffer.size == (2, 2)


def test_cancel_marks_pending_load(tmp_path, write_png):
    path = write_png(tmp_path / "a.png")
    release = threading.Event()

    def blocking_decoder(data):
        release.wait(timeout=10)
        return decode(data)

    loader = ImageLoader(decoder=blocking_decoder)
    try:
        future = loader.load(path)
        assert loader.is_loading
        loader.cancel()
        assert not loader.is_loading
        release.set()
        assert future.result(timeout=10).cancelled
    finally:
        loader.shutdown()


def test_load_errors_surface_through_future(tmp_path):
    corrupt = tmp_path / "corrupt.png"
    corrupt.write_bytes(b"nope")
    loader = ImageLoader()
    try:
        with pytest.raises(IOFailure):
            loader.load(tmp_path / "missing.png").result(timeout=10)
        with pytest.raises(DecodeFailure):
            loader.load(corrupt).result(timeout=10)
    finally:
        loader.shutdown()
