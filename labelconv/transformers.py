"""Geometry transformers applied to unified boxes between input and output adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .config import SHAPE_NORMALIZE_NONE, SHAPE_NORMALIZE_RECTANGLE, ShapeNormalize
from .geometry import bounding_rect, calculate_center, oriented_bounding_box, round_points
from .types import Polygon, UnifiedOCRBox, UnifiedPoint


class Transformer(Protocol):
    def apply(self, boxes: Sequence[UnifiedOCRBox], image_path: str) -> List[UnifiedOCRBox]:
        """Return a new box list; inputs are never mutated."""


def _with_points(box: UnifiedOCRBox, points: List[UnifiedPoint]) -> UnifiedOCRBox:
    updated = dict(box)
    updated["points"] = points
    return updated  # type: ignore[return-value]


def normalize_points(points: Polygon, use_oriented_box: bool = False) -> List[UnifiedPoint]:
    if len(points) < 3:
        return list(points)
    if use_oriented_box:
        return oriented_bounding_box(points).points
    return bounding_rect(points).corners()


def resize_points(points: Polygon, width_increment: float, height_increment: float) -> List[UnifiedPoint]:
    """Grow or shrink the bounding rect around the centroid.

    Boxes with fewer than three points have no area and are returned as is.
    """
    if len(points) < 3:
        return list(points)
    center = calculate_center(points)
    rect = bounding_rect(points)
    new_width = max(1.0, rect.width + width_increment)
    new_height = max(1.0, rect.height + height_increment)
    scale_x = new_width / rect.width if rect.width else 1.0
    scale_y = new_height / rect.height if rect.height else 1.0
    return [
        UnifiedPoint(center.x + (p.x - center.x) * scale_x, center.y + (p.y - center.y) * scale_y)
        for p in points
    ]


@dataclass(frozen=True)
class NormalizeTransformer:
    normalize_shape: ShapeNormalize = SHAPE_NORMALIZE_NONE
    use_oriented_box: bool = False

    def apply(self, boxes: Sequence[UnifiedOCRBox], image_path: str) -> List[UnifiedOCRBox]:
        if self.normalize_shape != SHAPE_NORMALIZE_RECTANGLE:
            return list(boxes)
        return [_with_points(box, normalize_points(box["points"], self.use_oriented_box)) for box in boxes]


@dataclass(frozen=True)
class ResizeTransformer:
    width_increment: Optional[float] = None
    height_increment: Optional[float] = None

    def apply(self, boxes: Sequence[UnifiedOCRBox], image_path: str) -> List[UnifiedOCRBox]:
        if not self.width_increment and not self.height_increment:
            return list(boxes)
        return [
            _with_points(
                box,
                resize_points(box["points"], self.width_increment or 0.0, self.height_increment or 0.0),
            )
            for box in boxes
        ]


@dataclass(frozen=True)
class RoundTransformer:
    precision: Optional[int] = None

    def apply(self, boxes: Sequence[UnifiedOCRBox], image_path: str) -> List[UnifiedOCRBox]:
        if self.precision is None or self.precision < 0:
            return list(boxes)
        precision = self.precision
        return [_with_points(box, round_points(box["points"], precision)) for box in boxes]


__all__ = [
    "Transformer",
    "NormalizeTransformer",
    "ResizeTransformer",
    "RoundTransformer",
    "normalize_points",
    "resize_points",
]
