"""Reading-order sort for horizontal rows and right-to-left vertical columns."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cmp_to_key
from typing import List, Sequence, TypedDict

from .config import (
    SORT_HORIZONTAL_LTR,
    SORT_HORIZONTAL_NONE,
    SORT_HORIZONTAL_RTL,
    SORT_VERTICAL_NONE,
    SORT_VERTICAL_TOP_BOTTOM,
    HorizontalSort,
    VerticalSort,
)
from .geometry import BoundingRect, bounding_rect
from .types import UnifiedOCRBox

GROUPING_TOLERANCE = 50.0  # px; boxes closer than this share a row or column
VERTICAL_ASPECT_RATIO = 1.5  # height / width above which a box reads vertically


class _AnnotatedBox(TypedDict):
    box: UnifiedOCRBox
    x_center: float
    y_center: float


def _rect(box: UnifiedOCRBox) -> BoundingRect:
    points = box["points"]
    if not points:
        return BoundingRect(0.0, 0.0, 0.0, 0.0)
    return bounding_rect(points)


def _annotate(box: UnifiedOCRBox) -> _AnnotatedBox:
    center = _rect(box).center
    return {"box": box, "x_center": center.x, "y_center": center.y}


def is_vertical_script(boxes: Sequence[UnifiedOCRBox]) -> bool:
    """True when more than half of the boxes are taller than 1.5x their width."""
    if not boxes:
        return False
    vertical = 0
    for box in boxes:
        rect = _rect(box)
        if rect.height > rect.width * VERTICAL_ASPECT_RATIO:
            vertical += 1
    return vertical > len(boxes) / 2


def _column_average(column: List[_AnnotatedBox]) -> float:
    return sum(entry["x_center"] for entry in column) / len(column)


def _order_columns_right_to_left(boxes: Sequence[UnifiedOCRBox], vertical: VerticalSort) -> List[UnifiedOCRBox]:
    columns: List[List[_AnnotatedBox]] = []
    for item in (_annotate(box) for box in boxes):
        for column in columns:
            if abs(item["x_center"] - _column_average(column)) < GROUPING_TOLERANCE:
                column.append(item)
                break
        else:
            columns.append([item])

    columns.sort(key=_column_average, reverse=True)
    descending = vertical != SORT_VERTICAL_TOP_BOTTOM
    ordered: List[UnifiedOCRBox] = []
    for column in columns:
        column.sort(key=lambda entry: entry["y_center"], reverse=descending)
        ordered.extend(entry["box"] for entry in column)
    return ordered


def _order_rows(
    boxes: Sequence[UnifiedOCRBox], vertical: VerticalSort, horizontal: HorizontalSort
) -> List[UnifiedOCRBox]:
    def compare(a: _AnnotatedBox, b: _AnnotatedBox) -> float:
        if vertical != SORT_VERTICAL_NONE:
            y_diff = a["y_center"] - b["y_center"]
            if vertical != SORT_VERTICAL_TOP_BOTTOM:
                y_diff = -y_diff
            if horizontal == SORT_HORIZONTAL_NONE or abs(y_diff) > GROUPING_TOLERANCE:
                return y_diff
        if horizontal == SORT_HORIZONTAL_NONE:
            return 0
        x_diff = a["x_center"] - b["x_center"]
        return x_diff if horizontal == SORT_HORIZONTAL_LTR else -x_diff

    annotated = sorted((_annotate(box) for box in boxes), key=cmp_to_key(compare))
    return [entry["box"] for entry in annotated]


@dataclass(frozen=True)
class SortTransformer:
    vertical: VerticalSort = SORT_VERTICAL_NONE
    horizontal: HorizontalSort = SORT_HORIZONTAL_NONE

    def apply(self, boxes: Sequence[UnifiedOCRBox], image_path: str) -> List[UnifiedOCRBox]:
        return sort_boxes(boxes, self.vertical, self.horizontal)


def sort_boxes(
    boxes: Sequence[UnifiedOCRBox], vertical: VerticalSort, horizontal: HorizontalSort
) -> List[UnifiedOCRBox]:
    """Order boxes for reading.

    Vertical scripts read right-to-left are grouped into columns first;
    everything else is a stable row sort where the vertical order wins only
    once centers differ by more than ``GROUPING_TOLERANCE``.
    """

    if vertical == SORT_VERTICAL_NONE and horizontal == SORT_HORIZONTAL_NONE:
        return boxes  # type: ignore[return-value]
    if horizontal == SORT_HORIZONTAL_RTL and vertical != SORT_VERTICAL_NONE and is_vertical_script(boxes):
        return _order_columns_right_to_left(boxes, vertical)
    return _order_rows(boxes, vertical, horizontal)


__all__ = ["SortTransformer", "sort_boxes", "is_vertical_script", "GROUPING_TOLERANCE", "VERTICAL_ASPECT_RATIO"]
