"""Label Studio task adapters for the full export and the min (JSON-MIN) dialect."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import diagnostics
from .config import DEFAULT_LABEL_NAME, DEFAULT_MODEL_VERSION, OUTPUT_MODE_ANNOTATIONS, OUTPUT_MODE_PREDICTIONS, OutputMode
from .diagnostics import DiagnosticSink, report
from .geometry import points_from_percentages, points_to_percentages, rectangle_to_points, rotate_points
from .image import get_image_dimensions
from .ppocr import FormatError, new_id
from .processor import ImagePathResolver
from .types import UnifiedOCRBox, UnifiedOCRTask, UnifiedPoint

logger = logging.getLogger(__name__)

DIALECT_FULL = "full"
DIALECT_MIN = "min"

Dialect = Literal["full", "min"]

# Keys of a merged result ``value`` that are rebuilt from geometry and text on output.
GEOMETRY_VALUE_KEYS = frozenset({"points", "closed", "x", "y", "width", "height", "rotation", "text", "labels"})

_Model = TypeVar("_Model", bound=BaseModel)


class DialectError(FormatError):
    """Raised when a record matches neither Label Studio dialect."""


class ResultItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Union[str, int]
    type: str = ""
    from_name: str = ""
    to_name: str = "image"
    value: Dict[str, Any] = Field(default_factory=dict)
    original_width: Optional[float] = None
    original_height: Optional[float] = None
    image_rotation: Optional[float] = None
    score: Optional[float] = None


class Annotation(BaseModel):
    model_config = ConfigDict(extra="allow")

    result: List[ResultItem] = Field(default_factory=list)


class Prediction(BaseModel):
    model_config = ConfigDict(extra="allow")

    result: List[ResultItem] = Field(default_factory=list)
    model_version: Optional[str] = None


class TaskData(BaseModel):
    model_config = ConfigDict(extra="allow")

    ocr: str


class LabelStudioTask(BaseModel):
    """Task as exported by Label Studio's JSON export."""

    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    data: TaskData
    annotations: List[Annotation] = Field(default_factory=list)
    predictions: List[Prediction] = Field(default_factory=list)


class MinRegion(BaseModel):
    model_config = ConfigDict(extra="allow")

    points: Optional[List[List[float]]] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: float = 0.0
    original_width: Optional[float] = None
    original_height: Optional[float] = None


class LabelStudioMinTask(BaseModel):
    """Task as exported by Label Studio's JSON-MIN export."""

    model_config = ConfigDict(extra="allow")

    ocr: str
    id: Union[int, str]
    bbox: List[Optional[MinRegion]] = Field(default_factory=list)
    poly: List[Optional[MinRegion]] = Field(default_factory=list)
    label: List[Dict[str, Any]] = Field(default_factory=list)
    transcription: List[str] = Field(default_factory=list)

    @field_validator("transcription", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


def _validate(model: Type[_Model], record: Union[_Model, Dict[str, Any]]) -> _Model:
    if isinstance(record, model):
        return record
    try:
        return model.model_validate(record)
    except ValidationError as exc:
        raise FormatError(f"Invalid {model.__name__}: {exc}") from exc


def detect_dialect(record: Any) -> Dialect:
    """Tell a full export task from a JSON-MIN one by its top-level keys."""
    if isinstance(record, BaseModel):
        record = record.model_dump()
    if not isinstance(record, dict):
        raise DialectError(f"Expected a JSON object, got {type(record).__name__}")
    if "annotations" in record or "predictions" in record or isinstance(record.get("data"), dict):
        return DIALECT_FULL
    if "ocr" in record:
        return DIALECT_MIN
    raise DialectError("Record is neither a Label Studio export task nor a JSON-MIN task")


def detect_batch_dialect(records: Sequence[Any]) -> Dialect:
    dialects = {detect_dialect(record) for record in records}
    if len(dialects) > 1:
        raise DialectError("Mixed Label Studio dialects in one batch")
    return dialects.pop() if dialects else DIALECT_FULL


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _task_number(task_id: Any, fallback: int) -> int:
    try:
        return int(task_id)
    except (TypeError, ValueError):
        return fallback


def _text_of(value: Dict[str, Any]) -> Optional[str]:
    text = value.get("text")
    if isinstance(text, list):
        return " ".join(str(part) for part in text)
    if isinstance(text, str):
        return text
    return None


def _rectangle(value: Dict[str, Any], width: float, height: float) -> List[UnifiedPoint]:
    corners = rectangle_to_points(
        float(value["x"]), float(value["y"]), float(value["width"]), float(value["height"]), width, height
    )
    rotation = float(value.get("rotation") or 0.0)
    if rotation:
        # Label Studio rotates rectangles about their top-left corner.
        return rotate_points(corners, corners[0], math.radians(rotation))
    return corners


def _region_points(value: Dict[str, Any], width: float, height: float) -> List[UnifiedPoint]:
    if value.get("points"):
        return points_from_percentages(value["points"], width, height)
    if all(value.get(key) is not None for key in ("x", "y", "width", "height")):
        return _rectangle(value, width, height)
    return []


def _detect_size(
    image_path: str, sink: Optional[DiagnosticSink], width: float | None = None, height: float | None = None
) -> tuple[int, int]:
    if width and height:
        return int(width), int(height)
    size = get_image_dimensions(image_path)
    if size is not None:
        return size.width, size.height
    report(
        sink,
        diagnostics.IMAGE_SIZE_UNKNOWN,
        f"Failed to detect image size for {image_path}, using 0x0",
        image_path=image_path,
        source=logger,
    )
    return 0, 0


def full_input(
    record: Union[LabelStudioTask, Dict[str, Any]],
    resolve_image_path: ImagePathResolver,
    *,
    auto_detect_image_size: bool = True,
    sink: Optional[DiagnosticSink] = None,
) -> UnifiedOCRTask:
    task = _validate(LabelStudioTask, record)
    image_path = resolve_image_path(task.data.ocr)

    if task.annotations:
        results = task.annotations[0].result
    elif task.predictions:
        results = task.predictions[0].result
    else:
        results = []

    size_item = next(
        (item for item in results if item.original_width is not None and item.original_height is not None),
        None,
    )
    width = int(size_item.original_width or 0) if size_item else 0
    height = int(size_item.original_height or 0) if size_item else 0
    if auto_detect_image_size and (not width or not height):
        width, height = _detect_size(image_path, sink)

    grouped: Dict[str, List[ResultItem]] = {}
    for item in results:
        grouped.setdefault(str(item.id), []).append(item)

    boxes: List[UnifiedOCRBox] = []
    for box_id, items in grouped.items():
        merged: Dict[str, Any] = {}
        for item in items:
            merged.update(item.value)
        boxes.append(
            {
                "id": box_id,
                "points": _region_points(merged, width, height),
                "text": _text_of(merged),
                "score": size_item.score if size_item else None,
                "metadata": {k: v for k, v in merged.items() if k not in GEOMETRY_VALUE_KEYS},
            }
        )

    metadata = task.model_dump(exclude={"id", "annotations", "predictions"})
    return {
        "id": str(task.id),
        "image_path": image_path,
        "width": width,
        "height": height,
        "boxes": boxes,
        "metadata": metadata,
    }


def _result_items(
    box_id: str,
    percent_points: List[List[float]],
    text: str,
    label_name: str,
    width: int,
    height: int,
    score: Optional[float],
) -> List[Dict[str, Any]]:
    extra = {"score": score} if score is not None else {}
    common = {"original_width": width, "original_height": height, "image_rotation": 0}
    shapes = (
        ("poly", "polygon", {}),
        ("label", "labels", {"labels": [label_name]}),
        ("transcription", "textarea", {"text": [text]}),
    )
    return [
        {
            **common,
            "value": {"points": percent_points, "closed": True, **value_extra},
            "id": box_id,
            "from_name": from_name,
            "to_name": "image",
            "type": item_type,
            "origin": "manual",
            **extra,
        }
        for from_name, item_type, value_extra in shapes
    ]


def full_output(
    task: UnifiedOCRTask,
    resolve_image_path: ImagePathResolver,
    *,
    output_mode: OutputMode = OUTPUT_MODE_ANNOTATIONS,
    label_name: str = DEFAULT_LABEL_NAME,
    task_id: int = 1,
    model_version: str = DEFAULT_MODEL_VERSION,
) -> Dict[str, Any]:
    """Build a Label Studio export task; each box yields polygon, labels and textarea items."""

    image_path = resolve_image_path(task["image_path"])
    number = _task_number(task.get("id"), task_id)
    width, height = task["width"], task["height"]
    predictions = output_mode == OUTPUT_MODE_PREDICTIONS
    now = _now()

    result: List[Dict[str, Any]] = []
    for box in task["boxes"]:
        result.extend(
            _result_items(
                box.get("id") or new_id(),
                points_to_percentages(box["points"], width, height),
                box.get("text") or "",
                label_name,
                width,
                height,
                box.get("score") if predictions else None,
            )
        )

    annotations: List[Dict[str, Any]] = []
    prediction_list: List[Dict[str, Any]] = []
    if predictions:
        prediction_list.append(
            {
                "model_version": model_version,
                "result": result,
                "created_at": now,
                "task": number,
            }
        )
    else:
        annotations.append(
            {
                "id": number,
                "completed_by": 1,
                "result": result,
                "was_cancelled": False,
                "ground_truth": False,
                "created_at": now,
                "updated_at": now,
                "draft_created_at": now,
                "lead_time": 0,
                "prediction": {},
                "result_count": len(task["boxes"]),
                "unique_id": new_id(),
                "import_id": None,
                "last_action": None,
                "bulk_created": False,
                "task": number,
                "project": 1,
                "updated_by": 1,
                "parent_prediction": None,
                "parent_annotation": None,
                "last_created_by": None,
            }
        )

    meta = task.get("metadata", {}).get("meta") or {}
    return {
        "id": number,
        "annotations": annotations,
        "file_upload": image_path.rsplit("/", 1)[-1],
        "drafts": [],
        "predictions": prediction_list,
        "data": {"ocr": image_path},
        "meta": meta,
        "created_at": now,
        "updated_at": now,
        "allow_skip": False,
        "inner_id": number,
        "total_annotations": 0 if predictions else 1,
        "cancelled_annotations": 0,
        "total_predictions": 1 if predictions else 0,
        "comment_count": 0,
        "unresolved_comment_count": 0,
        "last_comment_updated_at": None,
        "project": 1,
        "updated_by": 1,
        "comment_authors": [],
    }


def min_input(
    record: Union[LabelStudioMinTask, Dict[str, Any]],
    resolve_image_path: ImagePathResolver,
    *,
    sink: Optional[DiagnosticSink] = None,
) -> UnifiedOCRTask:
    task = _validate(LabelStudioMinTask, record)
    image_path = resolve_image_path(task.ocr)

    sized = next(
        (region for region in [*task.poly, *task.bbox] if region and region.original_width and region.original_height),
        None,
    )
    width, height = _detect_size(
        image_path, sink, sized.original_width if sized else None, sized.original_height if sized else None
    )

    boxes: List[UnifiedOCRBox] = []
    count = max(len(task.poly), len(task.bbox), len(task.transcription))
    for index in range(count):
        poly = task.poly[index] if index < len(task.poly) else None
        bbox = task.bbox[index] if index < len(task.bbox) else None
        if poly is not None and poly.points:
            points = points_from_percentages(poly.points, width, height)
        elif bbox is not None:
            points = _region_points(bbox.model_dump(), width, height)
        else:
            continue
        if not points:
            continue
        boxes.append(
            {
                "id": new_id(),
                "points": points,
                "text": task.transcription[index] if index < len(task.transcription) else "",
                "metadata": {},
            }
        )

    return {
        "id": str(task.id),
        "image_path": image_path,
        "width": width,
        "height": height,
        "boxes": boxes,
    }


def min_output(
    task: UnifiedOCRTask,
    resolve_image_path: ImagePathResolver,
    *,
    label_name: str = DEFAULT_LABEL_NAME,
    task_id: int = 1,
) -> Dict[str, Any]:
    image_path = resolve_image_path(task["image_path"])
    number = _task_number(task.get("id"), task_id)
    width, height = task["width"], task["height"]
    now = _now()

    polygons = [points_to_percentages(box["points"], width, height) for box in task["boxes"]]
    return {
        "ocr": image_path,
        "id": number,
        "label": [
            {
                "points": points,
                "closed": True,
                "labels": [label_name],
                "original_width": width,
                "original_height": height,
            }
            for points in polygons
        ],
        "transcription": [box.get("text") or "" for box in task["boxes"]],
        "poly": [
            {"points": points, "closed": True, "original_width": width, "original_height": height}
            for points in polygons
        ],
        "annotator": 1,
        "annotation_id": number,
        "created_at": now,
        "updated_at": now,
        "lead_time": 0,
    }


__all__ = [
    "DIALECT_FULL",
    "DIALECT_MIN",
    "Dialect",
    "DialectError",
    "LabelStudioTask",
    "LabelStudioMinTask",
    "detect_dialect",
    "detect_batch_dialect",
    "full_input",
    "full_output",
    "min_input",
    "min_output",
]
