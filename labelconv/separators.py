"""Detect blank vertical gutters that separate neighbouring text columns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

from .grid import Grid

DEFAULT_WHITE_RATIO = 0.8
DEFAULT_SAMPLE_SIZE = 20
DEFAULT_EARLY_EXIT_SAMPLES = 5
DEFAULT_EARLY_EXIT_THRESHOLD = 0.5
MAX_SCAN_DISTANCE = 100


@dataclass(frozen=True)
class SeparatorDetector:
    """Classify a column of an ink mask as gutter or text.

    Only the first ``sample_size`` rows are inspected. The scan bails out as
    soon as the running background ratio falls below ``early_exit_threshold``
    (checked from the ``early_exit_samples``-th row onward).
    """

    mask: Grid
    white_ratio: float = DEFAULT_WHITE_RATIO
    sample_size: int = DEFAULT_SAMPLE_SIZE
    early_exit_samples: int = DEFAULT_EARLY_EXIT_SAMPLES
    early_exit_threshold: float = DEFAULT_EARLY_EXIT_THRESHOLD

    def __call__(self, x: int) -> bool:
        if not 0 <= x < self.mask.width:
            return False
        samples = min(self.mask.height, self.sample_size)
        if samples <= 0:
            return False
        white = 0
        for row, value in enumerate(self.mask.column(x, samples).tolist()):
            if not value:
                white += 1
            if row >= self.early_exit_samples - 1 and white / (row + 1) < self.early_exit_threshold:
                return False
        return white / samples > self.white_ratio


def find_separator_boundaries(
    min_x: int,
    max_x: int,
    original_min_x: int,
    original_max_x: int,
    max_expansion: int,
    is_separator: Callable[[int], bool],
    roi_width: int,
) -> Tuple[int, int]:
    """Scan outward from ``[min_x, max_x]`` and stop just inside the first gutter."""

    scan_distance = min(max_expansion, MAX_SCAN_DISTANCE)

    left = min_x
    for x in range(min_x - 1, max(0, original_min_x - scan_distance) - 1, -1):
        if is_separator(x):
            left = x + 1
            break

    right = max_x
    for x in range(max_x + 1, min(roi_width - 1, original_max_x + scan_distance) + 1):
        if is_separator(x):
            right = x - 1
            break

    return left, right


__all__ = ["SeparatorDetector", "find_separator_boundaries", "MAX_SCAN_DISTANCE"]
