import threading
from concurrent.futures import wait

import pytest

from bitmap_engine.codec import read_image
from bitmap_engine.preload import PreloadCache


@pytest.fixture()
def images(tmp_path, write_png):
    return [
        write_png(tmp_path / "1.png", size=(1600, 600)),
        write_png(tmp_path / "2.png", size=(40, 30)),
        write_png(tmp_path / "3.png", size=(10, 10)),
    ]


@pytest.fixture()
def cache():
    cache = PreloadCache(max_workers=2)
    yield cache
    cache.shutdown()


def _update(cache, paths, **overrides):
    options = dict(container_size=(800, 600), auto_mode="fit", current_zoom=1.0, zoom_limit=1.0)
    options.update(overrides)
    return cache.update(paths, **options)


def test_update_decodes_neighbours_with_view(cache, images):
    wait(_update(cache, images[:2]), timeout=10)
    assert sorted(cache.paths) == sorted(str(path) for path in images[:2])

    wide = cache.get(images[0])
    assert (wide.natural_width, wide.natural_height) == (1600, 600)
    assert wide.zoom == 0.5
    assert (wide.translate_x, wide.translate_y) == (0, 150)

    small = cache.get(images[1])
    assert small.zoom == 1.0
    assert (small.translate_x, small.translate_y) == (380, 285)


def test_manual_mode_keeps_current_zoom(cache, images):
    wait(_update(cache, [images[1]], auto_mode=False, current_zoom=2.0), timeout=10)
    entry = cache.get(images[1])
    assert entry.zoom == 2.0
    assert entry.auto_mode is False


def test_update_evicts_non_adjacent_entries(cache, images):
    wait(_update(cache, images[:2]), timeout=10)
    wait(_update(cache, images[1:]), timeout=10)
    assert cache.get(images[0]) is None
    assert cache.get(images[1]) is not None
    assert cache.get(images[2]) is not None


def test_existing_entries_are_not_decoded_again(cache, images):
    wait(_update(cache, [images[1]]), timeout=10)
    assert _update(cache, [images[1]]) == []


def test_stale_result_is_discarded(images):
    started = threading.Event()
    release = threading.Event()

    def slow_reader(path):
        started.set()
        release.wait(timeout=10)
        return read_image(path)

    cache = PreloadCache(slow_reader, max_workers=1)
    try:
        futures = _update(cache, [images[2]])
        assert started.wait(timeout=10)
        _update(cache, [])
        release.set()
        wait(futures, timeout=10)
        assert futures[0].result() is None
        assert cache.get(images[2]) is None
        assert cache.paths == []
    finally:
        cache.shutdown()


def test_failed_decode_is_skipped(cache, tmp_path):
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not a png")
    futures = _update(cache, [broken])
    wait(futures, timeout=10)
    assert futures[0].result() is None
    assert cache.paths == []
    assert cache.pending_paths == []


def test_pop_and_clear(cache, images):
    wait(_update(cache, images[:2]), timeout=10)
    entry = cache.pop(images[0])
    assert entry is not None
    assert cache.get(images[0]) is None
    cache.clear()
    assert cache.paths == []
