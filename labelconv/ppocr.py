"""PPOCRLabel ``Label.txt`` codec and unified-model adapters."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer

from . import diagnostics
from .diagnostics import DiagnosticSink, report
from .image import get_image_dimensions
from .processor import ImagePathResolver
from .types import UnifiedOCRBox, UnifiedOCRTask, points_to_tuple, tuple_to_points

logger = logging.getLogger(__name__)

ID_LENGTH = 10


class FormatError(ValueError):
    """Raised when a task record does not match its annotation format."""


def new_id() -> str:
    return uuid.uuid4().hex[:ID_LENGTH]


def compact_number(value: float) -> Union[int, float]:
    """Write integral floats as ints so ``Label.txt`` keeps PPOCRLabel's look."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class PPOCRLabelItem(BaseModel):
    """One text region of a ``Label.txt`` row; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    transcription: str
    points: List[List[float]]
    dt_score: Optional[float] = None
    difficult: Optional[bool] = None

    @field_serializer("points")
    def _serialize_points(self, points: List[List[float]]) -> List[List[Union[int, float]]]:
        return [[compact_number(v) for v in pair] for pair in points]


class PPOCRLabelTask(BaseModel):
    image_path: str
    data: List[PPOCRLabelItem] = Field(default_factory=list)


def validate_task(record: Union[PPOCRLabelTask, Dict[str, Any]]) -> PPOCRLabelTask:
    if isinstance(record, PPOCRLabelTask):
        return record
    try:
        return PPOCRLabelTask.model_validate(record)
    except ValidationError as exc:
        raise FormatError(f"Invalid PPOCRLabel task: {exc}") from exc


def parse_label_file(text: str) -> List[PPOCRLabelTask]:
    """Parse ``<image path>\\t<json array>`` rows, skipping blank lines."""

    tasks: List[PPOCRLabelTask] = []
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        image_path, sep, payload = line.partition("\t")
        if not sep:
            raise FormatError(f"Line {line_no}: expected '<image path>\\t<json>'")
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise FormatError(f"Line {line_no}: invalid JSON ({exc.msg})") from exc
        if not isinstance(data, list):
            raise FormatError(f"Line {line_no}: expected a JSON array of regions")
        tasks.append(validate_task({"image_path": image_path.strip(), "data": data}))
    return tasks


def format_label_file(tasks: Iterable[PPOCRLabelTask]) -> str:
    lines = []
    for task in tasks:
        items = [item.model_dump(exclude_none=True) for item in task.data]
        payload = json.dumps(items, ensure_ascii=False, separators=(",", ":"))
        lines.append(f"{task.image_path}\t{payload}")
    return "".join(line + "\n" for line in lines)


def ppocr_input(
    record: Union[PPOCRLabelTask, Dict[str, Any]],
    resolve_image_path: ImagePathResolver,
    *,
    sink: Optional[DiagnosticSink] = None,
) -> UnifiedOCRTask:
    task = validate_task(record)
    image_path = resolve_image_path(task.image_path)

    width = height = 0
    size = get_image_dimensions(image_path)
    if size is None:
        report(
            sink,
            diagnostics.IMAGE_SIZE_UNKNOWN,
            f"Failed to detect image size for {image_path}, using 0x0",
            image_path=image_path,
            source=logger,
        )
    else:
        width, height = size

    boxes: List[UnifiedOCRBox] = []
    for item in task.data:
        metadata = item.model_dump(exclude={"transcription", "points", "dt_score"}, exclude_none=True)
        boxes.append(
            {
                "id": new_id(),
                "points": tuple_to_points(item.points),
                "text": item.transcription,
                "score": item.dt_score,
                "metadata": metadata,
            }
        )
    return {
        "id": new_id(),
        "image_path": image_path,
        "width": width,
        "height": height,
        "boxes": boxes,
    }


def ppocr_output(task: UnifiedOCRTask, resolve_image_path: ImagePathResolver) -> PPOCRLabelTask:
    data = []
    for box in task["boxes"]:
        item: Dict[str, Any] = {
            **box.get("metadata", {}),
            "transcription": box.get("text") or "",
            "points": points_to_tuple(box["points"]),
        }
        if box.get("score") is not None:
            item["dt_score"] = box["score"]
        data.append(PPOCRLabelItem.model_validate(item))
    return PPOCRLabelTask(image_path=resolve_image_path(task["image_path"]), data=data)


__all__ = [
    "FormatError",
    "PPOCRLabelItem",
    "PPOCRLabelTask",
    "compact_number",
    "new_id",
    "validate_task",
    "parse_label_file",
    "format_label_file",
    "ppocr_input",
    "ppocr_output",
]
