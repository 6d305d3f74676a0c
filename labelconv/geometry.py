"""Geometry helpers for polygon normalization and bounding-box math."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import List, NamedTuple, Sequence

from .types import Polygon, UnifiedPoint

ROTATION_SNAP_DEGREES = 5.0


class BoundingRect(NamedTuple):
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> UnifiedPoint:
        return UnifiedPoint((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    def corners(self) -> List[UnifiedPoint]:
        """Return the four corners clockwise from top-left."""
        return [
            UnifiedPoint(self.min_x, self.min_y),
            UnifiedPoint(self.max_x, self.min_y),
            UnifiedPoint(self.max_x, self.max_y),
            UnifiedPoint(self.min_x, self.max_y),
        ]


class OrientedBox(NamedTuple):
    points: List[UnifiedPoint]
    angle: float


def calculate_center(points: Polygon) -> UnifiedPoint:
    """Arithmetic mean of the polygon vertices."""
    if not points:
        return UnifiedPoint(0.0, 0.0)
    count = len(points)
    return UnifiedPoint(
        sum(p.x for p in points) / count,
        sum(p.y for p in points) / count,
    )


def bounding_rect(points: Polygon) -> BoundingRect:
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return BoundingRect(min(xs), min(ys), max(xs), max(ys))


def box_rotation(points: Polygon) -> float:
    """Estimate rotation (radians) of a 4-point box from its first edge.

    Angles within a few degrees of horizontal are snapped to zero so that
    slightly jittered annotations are treated as axis-aligned.
    """

    if len(points) != 4:
        return 0.0
    p0, p1 = points[0], points[1]
    angle = math.atan2(p1.y - p0.y, p1.x - p0.x)
    degrees = abs(math.degrees(angle))
    if degrees < ROTATION_SNAP_DEGREES or degrees > 180.0 - ROTATION_SNAP_DEGREES:
        return 0.0
    return angle


def oriented_bounding_box(points: Polygon) -> OrientedBox:
    """Minimum-area-ish box aligned to the principal axis of the points."""
    if len(points) < 3:
        return OrientedBox(list(points), 0.0)

    center = calculate_center(points)
    count = len(points)
    cxx = sum((p.x - center.x) ** 2 for p in points) / count
    cyy = sum((p.y - center.y) ** 2 for p in points) / count
    cxy = sum((p.x - center.x) * (p.y - center.y) for p in points) / count
    angle = 0.5 * math.atan2(2.0 * cxy, cxx - cyy)

    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    local = [
        UnifiedPoint(
            (p.x - center.x) * cos_a + (p.y - center.y) * sin_a,
            -(p.x - center.x) * sin_a + (p.y - center.y) * cos_a,
        )
        for p in points
    ]
    rect = bounding_rect(local)
    corners = [
        UnifiedPoint(
            center.x + c.x * cos_a - c.y * sin_a,
            center.y + c.x * sin_a + c.y * cos_a,
        )
        for c in rect.corners()
    ]
    return OrientedBox(corners, angle)


def rotate_points(points: Sequence[UnifiedPoint], center: UnifiedPoint, angle: float) -> List[UnifiedPoint]:
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    rotated: List[UnifiedPoint] = []
    for p in points:
        dx = p.x - center.x
        dy = p.y - center.y
        rotated.append(UnifiedPoint(center.x + dx * cos_a - dy * sin_a, center.y + dx * sin_a + dy * cos_a))
    return rotated


def percentage_to_pixel(value: float, dimension: float) -> float:
    return value / 100.0 * dimension


def pixel_to_percentage(value: float, dimension: float) -> float:
    if not dimension:
        return 0.0
    return value / dimension * 100.0


def points_from_percentages(values: Sequence[Sequence[float]], width: float, height: float) -> List[UnifiedPoint]:
    return [
        UnifiedPoint(percentage_to_pixel(float(pair[0]), width), percentage_to_pixel(float(pair[1]), height))
        for pair in values
    ]


def points_to_percentages(points: Polygon, width: float, height: float) -> List[List[float]]:
    return [[pixel_to_percentage(p.x, width), pixel_to_percentage(p.y, height)] for p in points]


def rectangle_to_points(
    x: float, y: float, width: float, height: float, image_width: float, image_height: float
) -> List[UnifiedPoint]:
    """Label Studio rectangles are percentages of the image size."""
    left = percentage_to_pixel(x, image_width)
    top = percentage_to_pixel(y, image_height)
    right = percentage_to_pixel(x + width, image_width)
    bottom = percentage_to_pixel(y + height, image_height)
    return BoundingRect(left, top, right, bottom).corners()


def round_to_precision(value: float, precision: int) -> float:
    """Round half away from zero; negative precision disables rounding."""
    if precision < 0 or not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_points(points: Polygon, precision: int) -> List[UnifiedPoint]:
    if precision < 0:
        return list(points)
    return [UnifiedPoint(round_to_precision(p.x, precision), round_to_precision(p.y, precision)) for p in points]


__all__ = [
    "BoundingRect",
    "OrientedBox",
    "calculate_center",
    "bounding_rect",
    "box_rotation",
    "oriented_bounding_box",
    "rotate_points",
    "percentage_to_pixel",
    "pixel_to_percentage",
    "points_from_percentages",
    "points_to_percentages",
    "rectangle_to_points",
    "round_to_precision",
    "round_points",
]
