"""Raster image editing engine: filters, transforms, undo history and navigation."""

from .buffer import PixelBuffer, Region
from .codec import ImageFormat, decode, encode, read_image, save_buffer
from .config import EngineConfig, load_config
from .errors import (
    Cancelled,
    DecodeFailure,
    EngineError,
    HistoryExhausted,
    InvalidSelection,
    IOFailure,
)
from .history import HistoryEntry, HistoryManager
from .loader import CancellationToken, ImageLoader, LoadResult
from .navigation import ImageNavigator, NavigationState, natural_sort_key
from .pool import Surface, SurfacePool
from .preload import PreloadCache, PreloadEntry
from .selection import SelectionArea, SelectionRect, auto_select_content, get_selection_area
from .session import EditorSession
from .viewport import ViewState, ZoomController

__all__ = [
    "PixelBuffer",
    "Region",
    "ImageFormat",
    "decode",
    "encode",
    "read_image",
    "save_buffer",
    "EngineConfig",
    "load_config",
    "Cancelled",
    "DecodeFailure",
    "EngineError",
    "HistoryExhausted",
    "InvalidSelection",
    "IOFailure",
    "HistoryEntry",
    "HistoryManager",
    "CancellationToken",
    "ImageLoader",
    "LoadResult",
    "ImageNavigator",
    "NavigationState",
    "natural_sort_key",
    "Surface",
    "SurfacePool",
    "PreloadCache",
    "PreloadEntry",
    "SelectionArea",
    "SelectionRect",
    "auto_select_content",
    "get_selection_area",
    "EditorSession",
    "ViewState",
    "ZoomController",
]
