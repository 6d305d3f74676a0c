"""Connected-component labeling over binary ink masks."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from .grid import Grid

Pixel = Tuple[int, int]
StopCheck = Callable[[], bool]

STOP_CHECK_INTERVAL = 4096  # pixels visited between two stop checks


class AnalysisCancelled(Exception):
    """Raised when labeling is abandoned because its box ran out of time."""


@dataclass
class Component:
    pixels: List[Pixel] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.pixels)


def _flood_fill(mask: Grid, visited: np.ndarray, start: Pixel, should_stop: Optional[StopCheck]) -> Component:
    sx, sy = start
    visited[sy, sx] = True
    queue: deque[Pixel] = deque([start])
    component = Component()
    while queue:
        x, y = queue.popleft()
        component.pixels.append((x, y))
        if should_stop is not None and component.size % STOP_CHECK_INTERVAL == 0 and should_stop():
            raise AnalysisCancelled(f"flood fill stopped after {component.size} pixels")
        for nx, ny in mask.neighbors4(x, y):
            if visited[ny, nx] or not mask.get(nx, ny):
                continue
            visited[ny, nx] = True
            queue.append((nx, ny))
    return component


def find_connected_components(mask: Grid, should_stop: Optional[StopCheck] = None) -> List[Component]:
    """Return 4-connected foreground components in row-major seed order.

    ``should_stop`` is polled between components and periodically inside
    large ones; once it returns True, :class:`AnalysisCancelled` is raised.
    """
    visited = np.zeros((mask.height, mask.width), dtype=bool)
    components: List[Component] = []
    ys, xs = np.nonzero(mask.data)
    for y, x in zip(ys.tolist(), xs.tolist()):
        if visited[y, x]:
            continue
        if should_stop is not None and should_stop():
            raise AnalysisCancelled(f"labeling stopped after {len(components)} components")
        components.append(_flood_fill(mask, visited, (x, y), should_stop))
    return components


def filter_components(components: List[Component], min_size: int, max_size: int) -> List[Component]:
    return [comp for comp in components if min_size <= comp.size <= max_size]


__all__ = ["AnalysisCancelled", "Component", "Pixel", "StopCheck", "find_connected_components", "filter_components"]
