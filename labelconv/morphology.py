"""Morphological operators used to join character strokes before labeling."""

from __future__ import annotations

from scipy import ndimage

from .grid import Grid


def _footprint(radius: int) -> tuple[int, int]:
    if radius < 0:
        raise ValueError(f"kernel radius must be >= 0, got {radius}")
    side = 2 * radius + 1
    return side, side


def dilate(grid: Grid, radius: int) -> Grid:
    """Square max-filter of half-width ``radius``; out-of-bounds cells are ignored."""
    if radius == 0:
        return grid.copy()
    return Grid(ndimage.grey_dilation(grid.data, size=_footprint(radius), mode="nearest"))


def erode(grid: Grid, radius: int) -> Grid:
    """Square min-filter of half-width ``radius``; out-of-bounds cells are ignored."""
    if radius == 0:
        return grid.copy()
    return Grid(ndimage.grey_erosion(grid.data, size=_footprint(radius), mode="nearest"))


def closing(grid: Grid, radius: int) -> Grid:
    """Dilation followed by erosion."""
    return erode(dilate(grid, radius), radius)


__all__ = ["dilate", "erode", "closing"]
