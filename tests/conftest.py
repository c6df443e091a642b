from pathlib import Path
from typing import Callable, Tuple

import pytest
from PIL import Image


Color = Tuple[int, int, int, int]


@pytest.fixture()
def write_png() -> Callable[..., Path]:
    """Write a solid-colour PNG and return its path."""

    def _write(path: Path, size: Tuple[int, int] = (8, 6), color: Color = (255, 0, 0, 255)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGBA", size, color).save(path, format="PNG")
        return path

    return _write
