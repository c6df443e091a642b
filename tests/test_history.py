from io import BytesIO

import pytest
from PIL import Image

from bitmap_engine.buffer import PixelBuffer
from bitmap_engine.codec import JPEG_SIGNATURE, PNG_SIGNATURE, ImageFormat, encode
from bitmap_engine.errors import DecodeFailure
from bitmap_engine.history import HistoryEntry, HistoryManager
from bitmap_engine.viewport import ViewState


def _shade(value: int, size: int = 4) -> PixelBuffer:
    return PixelBuffer.filled(size, size, (value, value, value, 255))


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def history(events) -> HistoryManager:
    return HistoryManager(max_history_size=5, on_modified_change=events.append)


def test_cap_keeps_most_recent_entries(history):
    for value in range(8):
        history.save_state(_shade(value * 10), ViewState(zoom=value + 1))
    assert len(history) == 5
    assert history.cursor == 4
    retained = [entry.view_state.zoom for entry in history.entries]
    assert retained == [4, 5, 6, 7, 8]
    assert history.entries[0].encoded_image == encode(_shade(30), ImageFormat.PNG)


def test_undo_redo_round_trip_is_byte_identical(history):
    history.save_state(_shade(0), ViewState())
    history.save_state(_shade(50), ViewState(zoom=2))
    newest = history.current.encoded_image

    previous = history.undo()
    assert previous.encoded_image == encode(_shade(0), ImageFormat.PNG)
    assert history.redo().encoded_image == newest
    assert history.redo() is None


def test_undo_at_oldest_returns_none(history):
    assert history.undo() is None
    history.save_state(_shade(0), ViewState())
    assert history.undo() is None
    assert history.cursor == 0


def test_save_after_undo_discards_redo_tail(history):
    for value in (0, 10, 20, 30):
        history.save_state(_shade(value), ViewState())
    history.undo()
    history.undo()
    history.save_state(_shade(99), ViewState())
    assert len(history) == 3
    assert history.cursor == 2
    assert not history.can_redo
    assert history.current.encoded_image == encode(_shade(99), ImageFormat.PNG)


def test_large_image_is_stored_as_jpeg():
    history = HistoryManager()
    # 1024 x 768 x 4 bytes = 3 MiB
    buffer = PixelBuffer.filled(1024, 768, (10, 100, 200, 255))
    entry = history.save_state(buffer, ViewState())
    assert entry.format is ImageFormat.JPEG
    assert entry.encoded_image.startswith(JPEG_SIGNATURE)
    with Image.open(BytesIO(entry.encoded_image)) as image:
        assert image.format == "JPEG"
        assert image.size == (1024, 768)


def test_small_image_is_stored_as_png(history):
    entry = history.save_state(_shade(1), ViewState())
    assert entry.format is ImageFormat.PNG
    assert entry.encoded_image.startswith(PNG_SIGNATURE)


def test_large_image_cap_uses_smaller_limit():
    history = HistoryManager(max_history_size=50, large_image_max_size=3)
    for value in range(6):
        history.save_state(_shade(value), ViewState(), image_size=3 * 1024 * 1024)
    assert len(history) == 3
    assert all(entry.format is ImageFormat.JPEG for entry in history.entries)


def test_modified_notification_is_edge_triggered(history, events):
    history.save_state(_shade(0), ViewState())
    assert events == []
    history.save_state(_shade(1), ViewState())
    history.save_state(_shade(2), ViewState())
    assert events == [True]
    history.undo()
    assert events == [True]
    history.undo()
    assert events == [True, False]
    history.redo()
    assert events == [True, False, True]
    history.reset()
    assert events == [True, False, True, False]
    assert not history.is_modified


def test_ensure_initial_saved_runs_once_per_reset(history):
    calls = []
    history.ensure_initial_saved(lambda: calls.append(1))
    history.ensure_initial_saved(lambda: calls.append(2))
    assert calls == [1]
    history.reset()
    history.ensure_initial_saved(lambda: calls.append(3))
    assert calls == [1, 3]


def test_update_current_state_patches_view_only(history, events):
    history.save_state(_shade(0), ViewState())
    history.save_state(_shade(1), ViewState())
    encoded = history.current.encoded_image
    history.update_current_state(ViewState(translate_x=5, translate_y=6, zoom=3, auto_mode="fit"))
    assert history.cursor == 1
    assert len(history) == 2
    assert history.current.encoded_image == encoded
    assert history.current.view_state == ViewState(5, 6, 3, "fit")
    assert events == [True]


def test_update_current_state_without_entries_is_noop(history):
    history.update_current_state(ViewState(zoom=2))
    assert len(history) == 0


def test_position(history):
    assert history.position() == (0, 0)
    history.save_state(_shade(0), ViewState())
    history.save_state(_shade(1), ViewState())
    assert history.position() == (2, 2)


def test_legacy_record_is_normalised():
    raw = encode(_shade(42, size=3), ImageFormat.PNG)
    entry = HistoryEntry.from_record(raw)
    assert entry.format is ImageFormat.PNG
    assert (entry.width, entry.height) == (3, 3)
    assert entry.view_state == ViewState()


def test_versioned_record_round_trip():
    entry = HistoryEntry(
        encode(_shade(7), ImageFormat.PNG),
        ImageFormat.PNG,
        ViewState(1, 2, 0.5, False),
        4,
        4,
    )
    assert HistoryEntry.from_record(entry.to_record()) == entry
    assert HistoryEntry.from_record(entry) is entry


def test_legacy_record_must_be_an_image():
    with pytest.raises(DecodeFailure):
        HistoryEntry.from_record(b"not an image")
    with pytest.raises(TypeError):
        HistoryEntry.from_record(12)


def test_restore_mixed_records(history, events):
    legacy = encode(_shade(1), ImageFormat.PNG)
    versioned = HistoryEntry(encode(_shade(2), ImageFormat.PNG), ImageFormat.PNG, ViewState(zoom=2), 4, 4)
    history.restore([legacy, versioned.to_record()])
    assert len(history) == 2
    assert history.cursor == 1
    assert history.is_modified
    assert events == [True]

    history.restore([legacy, versioned], cursor=0)
    assert history.cursor == 0
    assert not history.is_modified
    assert history.current.encoded_image == legacy
