import copy

import pytest

from labelconv.geometry import bounding_rect, calculate_center
from labelconv.transformers import NormalizeTransformer, ResizeTransformer, RoundTransformer
from labelconv.types import UnifiedPoint, points_to_tuple, tuple_to_points


def _box(points, **extra):
    return {"id": "b1", "points": tuple_to_points(points), "text": "t", **extra}


def test_normalize_replaces_polygon_with_bounding_rect():
    boxes = [_box([[0, 0], [10, 0], [5, 8]])]
    original = copy.deepcopy(boxes)
    result = NormalizeTransformer("rectangle").apply(boxes, "img.png")
    assert points_to_tuple(result[0]["points"]) == [[0, 0], [10, 0], [10, 8], [0, 8]]
    assert result[0]["text"] == "t"
    assert boxes == original


def test_normalize_leaves_degenerate_boxes_alone():
    boxes = [_box([[1, 1], [4, 4]])]
    result = NormalizeTransformer("rectangle").apply(boxes, "img.png")
    assert result[0]["points"] == boxes[0]["points"]


def test_normalize_none_is_identity():
    boxes = [_box([[0, 0], [10, 0], [5, 8]])]
    assert NormalizeTransformer("none").apply(boxes, "img.png") == boxes


def test_normalize_with_oriented_box_gives_four_corners():
    boxes = [_box([[0, 0], [40, 10], [38, 18], [-2, 8], [20, 9]])]
    result = NormalizeTransformer("rectangle", use_oriented_box=True).apply(boxes, "img.png")
    assert len(result[0]["points"]) == 4


def test_resize_small_square_keeps_centroid():
    boxes = [_box([[100, 100], [110, 100], [110, 110], [100, 110]])]
    result = ResizeTransformer(4, 2).apply(boxes, "img.png")
    points = result[0]["points"]
    rect = bounding_rect(points)
    assert rect.width == pytest.approx(14)
    assert rect.height == pytest.approx(12)
    center = calculate_center(points)
    assert center.x == pytest.approx(105)
    assert center.y == pytest.approx(105)


def test_resize_wide_box():
    boxes = [_box([[0, 0], [100, 0], [100, 50], [0, 50]])]
    rect = bounding_rect(ResizeTransformer(4, 2).apply(boxes, "img.png")[0]["points"])
    assert rect.width == pytest.approx(104)
    assert rect.height == pytest.approx(52)


def test_resize_never_collapses_below_one_pixel():
    boxes = [_box([[0, 0], [10, 0], [10, 10], [0, 10]])]
    rect = bounding_rect(ResizeTransformer(-50, 0).apply(boxes, "img.png")[0]["points"])
    assert rect.width == pytest.approx(1)
    assert rect.height == pytest.approx(10)


def test_resize_zero_width_axis_is_left_unscaled():
    boxes = [_box([[5, 0], [5, 10], [5, 5]])]
    points = ResizeTransformer(4, 2).apply(boxes, "img.png")[0]["points"]
    assert [p.x for p in points] == [5, 5, 5]
    assert bounding_rect(points).height == pytest.approx(12)


def test_resize_zero_deltas_and_empty_points():
    boxes = [_box([[0, 0], [10, 0], [10, 10]])]
    assert ResizeTransformer(0, 0).apply(boxes, "img.png") == boxes
    assert ResizeTransformer(None, None).apply(boxes, "img.png") == boxes
    assert ResizeTransformer(3, 3).apply([_box([])], "img.png")[0]["points"] == []


def test_round_points():
    boxes = [_box([[1.23456, 2.34567]])]
    result = RoundTransformer(2).apply(boxes, "img.png")
    assert result[0]["points"] == [UnifiedPoint(1.23, 2.35)]
    assert boxes[0]["points"] == [UnifiedPoint(1.23456, 2.34567)]


def test_round_disabled():
    boxes = [_box([[1.23456, 2.34567]])]
    assert RoundTransformer(-1).apply(boxes, "img.png") == boxes
    assert RoundTransformer(None).apply(boxes, "img.png") == boxes


def test_normalize_then_resize_order_matters():
    boxes = [_box([[0, 0], [10, 0], [5, 10]])]
    normalize = NormalizeTransformer("rectangle")
    resize = ResizeTransformer(0, 10)
    normalized_first = resize.apply(normalize.apply(boxes, ""), "")
    resized_first = normalize.apply(resize.apply(boxes, ""), "")
    assert bounding_rect(normalized_first[0]["points"]).min_y == pytest.approx(-5)
    assert bounding_rect(resized_first[0]["points"]).min_y == pytest.approx(-10 / 3)


def test_resize_leaves_boxes_without_area_alone():
    boxes = [_box([[10, 10], [20, 10]]), _box([[3, 4]])]
    result = ResizeTransformer(10, 10).apply(boxes, "img.png")
    assert points_to_tuple(result[0]["points"]) == [[10, 10], [20, 10]]
    assert points_to_tuple(result[1]["points"]) == [[3, 4]]
