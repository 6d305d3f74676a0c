import math

import pytest

from labelconv.geometry import (
    bounding_rect,
    box_rotation,
    calculate_center,
    oriented_bounding_box,
    pixel_to_percentage,
    points_from_percentages,
    points_to_percentages,
    rectangle_to_points,
    rotate_points,
    round_points,
    round_to_precision,
)
from labelconv.types import UnifiedPoint, points_to_tuple, tuple_to_points

SQUARE = tuple_to_points([[0, 0], [10, 0], [10, 10], [0, 10]])


def test_center_and_bounding_rect():
    assert calculate_center(SQUARE) == UnifiedPoint(5.0, 5.0)
    rect = bounding_rect(tuple_to_points([[3, 7], [9, 1], [5, 4]]))
    assert (rect.min_x, rect.min_y, rect.max_x, rect.max_y) == (3, 1, 9, 7)
    assert rect.width == 6
    assert rect.height == 6
    assert points_to_tuple(rect.corners()) == [[3, 1], [9, 1], [9, 7], [3, 7]]


def test_box_rotation_snaps_near_horizontal():
    assert box_rotation(SQUARE) == 0.0
    slight = tuple_to_points([[0, 0], [100, 3], [100, 53], [0, 50]])
    assert box_rotation(slight) == 0.0
    assert box_rotation(SQUARE[:3]) == 0.0


def test_box_rotation_reports_real_tilt():
    tilted = rotate_points(SQUARE, UnifiedPoint(5, 5), math.radians(30))
    assert box_rotation(tilted) == pytest.approx(math.radians(30))


def test_oriented_box_of_axis_aligned_rect():
    rect = tuple_to_points([[0, 0], [20, 0], [20, 10], [0, 10]])
    box = oriented_bounding_box(rect)
    assert box.angle == pytest.approx(0.0)
    assert len(box.points) == 4
    for got, expected in zip(box.points, rect):
        assert got.x == pytest.approx(expected.x)
        assert got.y == pytest.approx(expected.y)


def test_oriented_box_follows_tilted_shape():
    rect = tuple_to_points([[0, 0], [40, 0], [40, 10], [0, 10]])
    tilted = rotate_points(rect, UnifiedPoint(20, 5), math.radians(20))
    box = oriented_bounding_box(tilted)
    assert abs(box.angle) == pytest.approx(math.radians(20), abs=1e-6)


def test_percentage_conversions():
    points = points_from_percentages([[50, 25], [100, 100]], 200, 80)
    assert points == [UnifiedPoint(100, 20), UnifiedPoint(200, 80)]
    assert points_to_percentages(points, 200, 80) == [[50, 25], [100, 100]]
    assert pixel_to_percentage(5, 0) == 0.0


def test_rectangle_to_points():
    corners = rectangle_to_points(10, 20, 30, 40, 200, 100)
    assert points_to_tuple(corners) == [[20, 20], [80, 20], [80, 60], [20, 60]]


def test_round_half_away_from_zero():
    assert round_to_precision(1.23456, 2) == 1.23
    assert round_to_precision(2.34567, 2) == 2.35
    assert round_to_precision(2.5, 0) == 3.0
    assert round_to_precision(-2.5, 0) == -3.0
    assert round_to_precision(1.005, 2) == 1.01


def test_round_is_idempotent_and_negative_precision_is_identity():
    value = 7.123456789
    once = round_to_precision(value, 3)
    assert round_to_precision(once, 3) == once
    assert round_to_precision(value, -1) == value
    assert math.isnan(round_to_precision(float("nan"), 2))
    pts = tuple_to_points([[1.23456, 2.34567]])
    assert round_points(pts, 2) == [UnifiedPoint(1.23, 2.35)]
