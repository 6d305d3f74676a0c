"""Typed structures shared by the converter modules."""

from __future__ import annotations

from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, TypedDict


class UnifiedPoint(NamedTuple):
    """Pixel coordinate of a polygon vertex."""

    x: float
    y: float


Polygon = Sequence[UnifiedPoint]
PointTuple = Tuple[float, float]


class UnifiedOCRBoxRequired(TypedDict):
    """Fields that every unified box must expose."""

    points: List[UnifiedPoint]


class UnifiedOCRBox(UnifiedOCRBoxRequired, total=False):
    """Single text region with optional recognition metadata."""

    id: str
    text: str
    score: Optional[float]
    metadata: Dict[str, Any]


class UnifiedOCRTaskRequired(TypedDict):
    """Fields that every unified task must expose."""

    image_path: str
    width: int
    height: int
    boxes: List[UnifiedOCRBox]


class UnifiedOCRTask(UnifiedOCRTaskRequired, total=False):
    """All regions for one image plus source-specific metadata."""

    id: str
    metadata: Dict[str, Any]


def tuple_to_points(values: Sequence[Sequence[float]]) -> List[UnifiedPoint]:
    """Convert ``[[x, y], ...]`` pairs into unified points."""
    return [UnifiedPoint(float(pair[0]), float(pair[1])) for pair in values]


def points_to_tuple(points: Polygon) -> List[List[float]]:
    """Convert unified points back into ``[[x, y], ...]`` pairs."""
    return [[point.x, point.y] for point in points]


__all__ = [
    "UnifiedPoint",
    "Polygon",
    "PointTuple",
    "UnifiedOCRBox",
    "UnifiedOCRTask",
    "tuple_to_points",
    "points_to_tuple",
]
