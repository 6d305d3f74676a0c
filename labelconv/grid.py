"""Two-dimensional raster wrapper with bounds-checked pixel access."""

from __future__ import annotations

from typing import Iterator, Tuple

import numpy as np
from PIL import Image


class Grid:
    """Row-major raster addressed as ``(x, y)``.

    Wraps a 2D numpy array so that callers never compute flat
    ``y * width + x`` offsets by hand.
    """

    __slots__ = ("_data",)

    def __init__(self, data: np.ndarray) -> None:
        if data.ndim != 2:
            raise ValueError(f"Grid requires a 2D array, got shape {data.shape}")
        self._data = data

    @classmethod
    def zeros(cls, width: int, height: int, dtype: type = np.uint8) -> "Grid":
        return cls(np.zeros((height, width), dtype=dtype))

    @classmethod
    def from_image(cls, image: Image.Image) -> "Grid":
        """Grayscale copy of a PIL image."""
        return cls(np.asarray(image.convert("L"), dtype=np.uint8))

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.width, self.height

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int, default: int = 0) -> int:
        if not self.in_bounds(x, y):
            return default
        return int(self._data[y, x])

    def set(self, x: int, y: int, value: int) -> None:
        if not self.in_bounds(x, y):
            raise IndexError(f"({x}, {y}) outside {self.width}x{self.height} grid")
        self._data[y, x] = value

    def column(self, x: int, limit: int | None = None) -> np.ndarray:
        """Values of column ``x`` from the top, optionally truncated."""
        if not 0 <= x < self.width:
            raise IndexError(f"column {x} outside grid of width {self.width}")
        col = self._data[:, x]
        return col if limit is None else col[:limit]

    def neighbors4(self, x: int, y: int) -> Iterator[Tuple[int, int]]:
        for nx, ny in ((x + 1, y), (x - 1, y), (x, y + 1), (x, y - 1)):
            if self.in_bounds(nx, ny):
                yield nx, ny

    def threshold(self, level: int) -> "Grid":
        """Binary ink mask: 1 where the value is darker than ``level``."""
        return Grid((self._data < level).astype(np.uint8))

    def otsu_threshold(self) -> int:
        """Otsu level: the first gray value maximising between-class variance.

        Returns 0 when the histogram cannot be split (a single gray value).
        """
        hist = np.bincount(self._data.ravel(), minlength=256)[:256].astype(np.float64)
        levels = np.arange(256, dtype=np.float64)
        total = hist.sum()
        weight_bg = np.cumsum(hist)
        weight_fg = total - weight_bg
        sum_bg = np.cumsum(levels * hist)
        valid = (weight_bg > 0) & (weight_fg > 0)
        if not valid.any():
            return 0
        mean_bg = np.divide(sum_bg, weight_bg, out=np.zeros(256), where=valid)
        mean_fg = np.divide(sum_bg[-1] - sum_bg, weight_fg, out=np.zeros(256), where=valid)
        variance = np.where(valid, weight_bg * weight_fg * (mean_bg - mean_fg) ** 2, 0.0)
        best = int(np.argmax(variance))
        return best if variance[best] > 0 else 0

    def bright_ratio(self, x0: int, y0: int, x1: int, y1: int, level: int) -> float:
        """Share of pixels in the inclusive rect ``(x0, y0)..(x1, y1)`` at or above ``level``.

        The rect is clipped to the grid; an empty rect gives 0.
        """
        x0, y0 = max(0, x0), max(0, y0)
        x1, y1 = min(self.width - 1, x1), min(self.height - 1, y1)
        if x1 < x0 or y1 < y0:
            return 0.0
        strip = self._data[y0 : y1 + 1, x0 : x1 + 1]
        return float(np.count_nonzero(strip >= level)) / strip.size

    def copy(self) -> "Grid":
        return Grid(self._data.copy())


__all__ = ["Grid"]
