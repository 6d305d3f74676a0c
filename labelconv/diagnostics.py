"""Structured diagnostics emitted by transformers instead of console output."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

IMAGE_MISSING = "image_missing"
IMAGE_TOO_LARGE = "image_too_large"
IMAGE_DECODE_FAILED = "image_decode_failed"
IMAGE_SIZE_UNKNOWN = "image_size_unknown"
BOX_TOO_LARGE = "box_too_large"
EMPTY_REGION = "empty_region"
NO_COMPONENTS = "no_components"
TIMEOUT = "timeout"
ANALYSIS_FAILED = "analysis_failed"


@dataclass(frozen=True)
class DiagnosticEvent:
    code: str
    message: str
    image_path: str | None = None
    box_index: int | None = None
    level: int = logging.WARNING
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["level"] = logging.getLevelName(self.level)
        return data


class DiagnosticSink:
    """Thread-safe collector for diagnostic events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[DiagnosticEvent] = []

    def emit(self, event: DiagnosticEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[DiagnosticEvent]:
        with self._lock:
            return list(self._events)

    def codes(self) -> List[str]:
        return [event.code for event in self.events]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def report(
    sink: Optional[DiagnosticSink],
    code: str,
    message: str,
    *,
    image_path: str | None = None,
    box_index: int | None = None,
    level: int = logging.WARNING,
    source: logging.Logger | None = None,
    **detail: Any,
) -> DiagnosticEvent:
    """Log an event and forward it to ``sink`` when one is attached."""

    event = DiagnosticEvent(
        code=code,
        message=message,
        image_path=image_path,
        box_index=box_index,
        level=level,
        detail=dict(detail),
    )
    (source or logger).log(level, "[%s] %s", code, message)
    if sink is not None:
        sink.emit(event)
    return event


__all__ = [
    "DiagnosticEvent",
    "DiagnosticSink",
    "report",
    "IMAGE_MISSING",
    "IMAGE_TOO_LARGE",
    "IMAGE_DECODE_FAILED",
    "IMAGE_SIZE_UNKNOWN",
    "BOX_TOO_LARGE",
    "EMPTY_REGION",
    "NO_COMPONENTS",
    "TIMEOUT",
    "ANALYSIS_FAILED",
]
