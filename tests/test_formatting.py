from bitmap_engine.formatting import format_bytes, format_dimensions, format_position, format_zoom


def test_format_bytes():
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.50 KB"
    assert format_bytes(2 * 1024 * 1024) == "2.00 MB"


def test_format_position():
    assert format_position(3, 12) == "3 / 12"


def test_format_zoom():
    assert format_zoom(1.0) == "100%"
    assert format_zoom(0.3333) == "33.3%"
    assert format_zoom(2.5) == "250%"


def test_format_dimensions():
    assert format_dimensions(640, 480) == "640x480"
    assert format_dimensions(640, 480, 2048) == "640x480 2.00 KB"
