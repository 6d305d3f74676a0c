"""Content-adaptive refinement of text boxes against the underlying scan.

Each box is re-fitted to the ink components around it. The horizontal extent
is percentile-trimmed and stops at blank gutters between text columns.
"""

from __future__ import annotations

import logging
import math
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional, Sequence, Tuple

from . import diagnostics
from .components import AnalysisCancelled, StopCheck, filter_components, find_connected_components
from .config import (
    ADAPTIVE_THRESHOLD_MAX,
    ADAPTIVE_THRESHOLD_MIN,
    ADAPTIVE_THRESHOLD_OFFSET,
    MAX_ADAPT_RESIZE_BOX_SIZE,
    MAX_ADAPT_RESIZE_IMAGE_SIZE,
    MAX_PADDING_VERTICAL_STEPS,
    MAX_WORKERS,
    AdaptResizeOptions,
)
from .diagnostics import DiagnosticSink, report
from .geometry import BoundingRect, bounding_rect, box_rotation, calculate_center, rotate_points
from .grid import Grid
from .image import ImageDecodeError, get_image_dimensions, load_grayscale
from .morphology import closing
from .separators import SeparatorDetector, find_separator_boundaries
from .types import Polygon, UnifiedOCRBox, UnifiedPoint

logger = logging.getLogger(__name__)

ROTATION_EPSILON = 0.01  # radians; below this a box is treated as axis-aligned


def _open_image(
    image_path: str, sink: Optional[DiagnosticSink], box_index: int | None = None
) -> Optional[Grid]:
    if not os.path.isfile(image_path):
        report(
            sink,
            diagnostics.IMAGE_MISSING,
            f"Image not found, keeping original boxes: {image_path}",
            image_path=image_path,
            box_index=box_index,
            source=logger,
        )
        return None

    size = get_image_dimensions(image_path)
    if size is None:
        report(
            sink,
            diagnostics.IMAGE_DECODE_FAILED,
            f"Could not read image header: {image_path}",
            image_path=image_path,
            box_index=box_index,
            source=logger,
        )
        return None
    if size.width > MAX_ADAPT_RESIZE_IMAGE_SIZE or size.height > MAX_ADAPT_RESIZE_IMAGE_SIZE:
        report(
            sink,
            diagnostics.IMAGE_TOO_LARGE,
            f"Skipping adaptive resize for large image ({size.width}x{size.height}): {image_path}",
            image_path=image_path,
            box_index=box_index,
            source=logger,
            width=size.width,
            height=size.height,
        )
        return None

    try:
        return load_grayscale(image_path)
    except ImageDecodeError as exc:
        report(
            sink,
            diagnostics.IMAGE_DECODE_FAILED,
            f"Skipping adaptive resize: {exc}",
            image_path=image_path,
            box_index=box_index,
            source=logger,
        )
        return None


def _percentile_bounds(sorted_values: Sequence[int], percentile: float) -> Tuple[int, int]:
    """Drop ``percentile`` percent of the values from each end."""
    count = len(sorted_values)
    low = int(math.floor(count * percentile / 100.0))
    high = count - 1 - low
    if low > high:
        low = high = (count - 1) // 2
    return sorted_values[low], sorted_values[high]


def _ink_level(roi: Grid, options: AdaptResizeOptions) -> int:
    if not options.use_adaptive_threshold:
        return options.threshold
    level = roi.otsu_threshold() + ADAPTIVE_THRESHOLD_OFFSET
    return max(ADAPTIVE_THRESHOLD_MIN, min(ADAPTIVE_THRESHOLD_MAX, level))


def _tighten_to_padding(
    roi: Grid,
    min_x: int,
    max_x: int,
    min_y: int,
    max_y: int,
    box_min_x: int,
    box_max_x: int,
    options: AdaptResizeOptions,
) -> Tuple[int, int, int, int]:
    """Move each edge inward until the strip just inside it is mostly background.

    Horizontal edges never move past the original box edge; vertical edges move
    at most ``MAX_PADDING_VERTICAL_STEPS`` rows.
    """

    width = options.padding_check_width

    def is_clear(x0: int, y0: int, x1: int, y1: int) -> bool:
        return roi.bright_ratio(x0, y0, x1, y1, options.min_padding_brightness) >= options.min_padding_ratio

    steps = 0
    while (
        steps < options.max_horizontal_expansion
        and min_x < min(box_min_x, max_x)
        and not is_clear(min_x, min_y, min(min_x + width - 1, max_x), max_y)
    ):
        min_x += 1
        steps += 1

    steps = 0
    while (
        steps < options.max_horizontal_expansion
        and max_x > max(box_max_x, min_x)
        and not is_clear(max(max_x - width + 1, min_x), min_y, max_x, max_y)
    ):
        max_x -= 1
        steps += 1

    if min_y > 0:
        steps = 0
        while (
            steps < MAX_PADDING_VERTICAL_STEPS
            and min_y < max_y
            and not is_clear(min_x, min_y, max_x, min(min_y + width - 1, max_y))
        ):
            min_y += 1
            steps += 1

    if max_y < roi.height - 1:
        steps = 0
        while (
            steps < MAX_PADDING_VERTICAL_STEPS
            and max_y > min_y
            and not is_clear(min_x, max(max_y - width + 1, min_y), max_x, max_y)
        ):
            max_y -= 1
            steps += 1

    return min_x, max_x, min_y, max_y


def _check_stop(should_stop: Optional[StopCheck]) -> None:
    if should_stop is not None and should_stop():
        raise AnalysisCancelled("adaptive resize cancelled")


def _refine(
    points: Polygon,
    gray: Grid,
    options: AdaptResizeOptions,
    image_path: str,
    sink: Optional[DiagnosticSink],
    box_index: int | None,
    should_stop: Optional[StopCheck] = None,
) -> List[UnifiedPoint]:
    original = list(points)
    rect = bounding_rect(points)
    x = max(0, int(math.floor(rect.min_x)))
    y = max(0, int(math.floor(rect.min_y)))
    w = max(1, int(math.ceil(rect.width)))
    h = max(1, int(math.ceil(rect.height)))

    if w > MAX_ADAPT_RESIZE_BOX_SIZE or h > MAX_ADAPT_RESIZE_BOX_SIZE:
        report(
            sink,
            diagnostics.BOX_TOO_LARGE,
            f"Skipping adaptive resize for large box ({w}x{h}) in {image_path}",
            image_path=image_path,
            box_index=box_index,
            source=logger,
            width=w,
            height=h,
        )
        return original

    margin = options.margin
    roi_x = max(0, x - margin)
    roi_y = max(0, y - margin)
    roi_right = min(gray.width, x + w + margin)
    roi_bottom = min(gray.height, y + h + margin)
    if roi_right <= roi_x or roi_bottom <= roi_y:
        report(
            sink,
            diagnostics.EMPTY_REGION,
            "Box lies outside the image",
            image_path=image_path,
            box_index=box_index,
            source=logger,
        )
        return original

    roi = Grid(gray.data[roi_y:roi_bottom, roi_x:roi_right])
    ink = roi.threshold(_ink_level(roi, options))
    closed = closing(ink, options.morphology_size)
    _check_stop(should_stop)
    components = filter_components(
        find_connected_components(closed, should_stop),
        options.min_component_size,
        options.max_component_size,
    )
    if not components:
        report(
            sink,
            diagnostics.NO_COMPONENTS,
            "No ink components of usable size around box",
            image_path=image_path,
            box_index=box_index,
            level=logging.DEBUG,
            source=logger,
        )
        return original

    xs = sorted(px for comp in components for px, _ in comp.pixels)
    ys = [py for comp in components for _, py in comp.pixels]
    min_x, max_x = _percentile_bounds(xs, options.outlier_percentile)
    min_y, max_y = min(ys), max(ys)
    _check_stop(should_stop)

    # Box edges in ROI coordinates, inclusive pixel columns.
    box_min_x = x - roi_x
    box_max_x = x - roi_x + w - 1
    expansion = options.max_horizontal_expansion

    detector = SeparatorDetector(
        ink,
        white_ratio=options.separator_white_ratio,
        sample_size=options.separator_sample_size,
        early_exit_samples=options.separator_early_exit_samples,
        early_exit_threshold=options.separator_early_exit_threshold,
    )
    left, right = find_separator_boundaries(
        min_x, max_x, box_min_x, box_max_x, expansion, detector, roi.width
    )
    core_min_x = max(left, box_min_x - expansion)
    core_max_x = min(right, box_max_x + expansion)
    if core_min_x > core_max_x:
        report(
            sink,
            diagnostics.EMPTY_REGION,
            "Ink lies outside the allowed expansion window",
            image_path=image_path,
            box_index=box_index,
            level=logging.DEBUG,
            source=logger,
        )
        return original

    if options.padding_check_width > 0:
        core_min_x, core_max_x, min_y, max_y = _tighten_to_padding(
            roi, core_min_x, core_max_x, min_y, max_y, box_min_x, box_max_x, options
        )

    refined = BoundingRect(
        float(max(0, roi_x + core_min_x - margin)),
        float(max(0, roi_y + min_y - margin)),
        float(min(gray.width, roi_x + core_max_x + 1 + margin)),
        float(min(gray.height, roi_y + max_y + 1 + margin)),
    ).corners()

    rotation = box_rotation(points)
    if abs(rotation) > ROTATION_EPSILON:
        return rotate_points(refined, calculate_center(points), rotation)
    return refined


def _safe_refine(
    points: Polygon,
    gray: Grid,
    options: AdaptResizeOptions,
    image_path: str,
    sink: Optional[DiagnosticSink],
    box_index: int | None,
    should_stop: Optional[StopCheck] = None,
) -> List[UnifiedPoint]:
    try:
        return _refine(points, gray, options, image_path, sink, box_index, should_stop)
    except AnalysisCancelled:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Adaptive resize crashed for box %s in %s", box_index, image_path)
        report(
            sink,
            diagnostics.ANALYSIS_FAILED,
            f"Skipping adaptive resize: {exc}",
            image_path=image_path,
            box_index=box_index,
            source=logger,
        )
        return list(points)


def adaptive_resize_bounding_box(
    points: Polygon,
    image_path: str,
    options: AdaptResizeOptions | None = None,
    sink: Optional[DiagnosticSink] = None,
    box_index: int | None = None,
) -> List[UnifiedPoint]:
    """Refit one box to the ink beneath it.

    Every failure is soft: the original points come back and a diagnostic is
    recorded in ``sink``. Boxes with fewer than three points are returned as is.
    """

    if len(points) < 3:
        report(
            sink,
            diagnostics.EMPTY_REGION,
            f"Box has {len(points)} points, need at least 3",
            image_path=image_path,
            box_index=box_index,
            level=logging.DEBUG,
            source=logger,
        )
        return list(points)
    gray = _open_image(image_path, sink, box_index)
    if gray is None:
        return list(points)
    return _safe_refine(points, gray, options or AdaptResizeOptions(), image_path, sink, box_index)


class _BoxClock:
    """Deadline of one box, started by the worker that picks the box up."""

    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        self.deadline = math.inf
        self.started = threading.Event()
        self.cancelled = threading.Event()

    def start(self) -> None:
        self.deadline = time.monotonic() + self.timeout_s
        self.started.set()

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.cancelled.is_set() or time.monotonic() > self.deadline


def _run_box(
    clock: _BoxClock,
    points: Polygon,
    gray: Grid,
    options: AdaptResizeOptions,
    image_path: str,
    sink: Optional[DiagnosticSink],
    box_index: int,
) -> List[UnifiedPoint]:
    clock.start()
    return _safe_refine(points, gray, options, image_path, sink, box_index, should_stop=clock.expired)


class AdaptResizeTransformer:
    """Run the adaptive refinement over every box of a task in a thread pool.

    Each box gets ``timeout_s`` from the moment a worker starts on it, so boxes
    waiting in the queue do not use up their budget. A box that misses its
    deadline keeps its previous geometry. Its worker is told to stop and gives
    up at the next checkpoint of the analysis; any late result is discarded.
    """

    def __init__(
        self,
        options: AdaptResizeOptions | None = None,
        sink: Optional[DiagnosticSink] = None,
        max_workers: int = MAX_WORKERS,
    ) -> None:
        self.options = options or AdaptResizeOptions()
        self.sink = sink
        self.max_workers = max(1, max_workers)

    def apply(self, boxes: Sequence[UnifiedOCRBox], image_path: str) -> List[UnifiedOCRBox]:
        if not boxes:
            return list(boxes)

        gray = _open_image(image_path, self.sink)
        if gray is None:
            return list(boxes)

        logger.info("Processing %d boxes with adaptive resize for: %s", len(boxes), image_path)
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(boxes)))
        pending: List[Optional[Tuple[Future[List[UnifiedPoint]], _BoxClock]]] = []
        try:
            for index, box in enumerate(boxes):
                if len(box["points"]) < 3:
                    pending.append(None)
                    continue
                clock = _BoxClock(self.options.timeout_s)
                future = executor.submit(
                    _run_box, clock, box["points"], gray, self.options, image_path, self.sink, index
                )
                pending.append((future, clock))

            resized: List[UnifiedOCRBox] = []
            for index, (box, entry) in enumerate(zip(boxes, pending)):
                if entry is None:
                    resized.append(dict(box))  # type: ignore[arg-type]
                    continue
                future, clock = entry
                clock.started.wait()
                timed_out = False
                try:
                    points = future.result(timeout=clock.remaining())
                except FutureTimeoutError:
                    timed_out = True
                    clock.cancelled.set()
                    points = list(box["points"])
                except AnalysisCancelled:
                    timed_out = True
                    points = list(box["points"])
                if timed_out:
                    report(
                        self.sink,
                        diagnostics.TIMEOUT,
                        f"Box {index + 1} timed out after {self.options.timeout_s}s, using original points",
                        image_path=image_path,
                        box_index=index,
                        source=logger,
                        timeout_s=self.options.timeout_s,
                    )
                updated = dict(box)
                updated["points"] = points
                resized.append(updated)  # type: ignore[arg-type]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info("Completed adaptive resize for %d boxes", len(boxes))
        return resized


__all__ = ["AdaptResizeTransformer", "adaptive_resize_bounding_box", "ROTATION_EPSILON"]
