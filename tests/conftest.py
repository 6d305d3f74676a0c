from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Tuple

import pytest
from PIL import Image, ImageDraw

Rect = Tuple[int, int, int, int]
ImageFactory = Callable[..., Path]


@pytest.fixture
def make_image(tmp_path: Path) -> ImageFactory:
    """Write a white RGB image with filled rectangles, black unless ``fill`` says otherwise (inclusive corners)."""

    def factory(
        relative: str = "page.png",
        size: Tuple[int, int] = (200, 100),
        ink: Iterable[Rect] = (),
        fill: object = "black",
    ) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        image = Image.new("RGB", size, "white")
        draw = ImageDraw.Draw(image)
        for rect in ink:
            draw.rectangle(rect, fill=fill)
        image.save(path)
        return path

    return factory
