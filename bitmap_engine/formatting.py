"""Human-readable strings for status displays."""

from __future__ import annotations


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def format_position(index: int, total: int) -> str:
    return f"{index} / {total}"


def format_zoom(zoom: float) -> str:
    percent = round(zoom * 1000) / 10
    if percent == int(percent):
        return f"{int(percent)}%"
    return f"{percent}%"


def format_dimensions(width: int, height: int, size: int | None = None) -> str:
    text = f"{width}x{height}"
    if size is not None:
        text = f"{text} {format_bytes(size)}"
    return text
