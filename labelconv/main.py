"""FastAPI server exposing the annotation conversion flows."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, ValidationError

from .config import (
    DEFAULT_BASE_SERVER_URL,
    DEFAULT_LABEL_NAME,
    IMAGE_BASE_DIR_TASK_FILE,
    OUTPUT_MODE_ANNOTATIONS,
    EnhanceOptions,
    ImageBaseDir,
    OutputMode,
)
from .converters import enhance_label_studio, enhance_ppocr, label_studio_to_ppocr, ppocr_to_label_studio
from .diagnostics import DiagnosticSink
from .label_studio import DialectError
from .ppocr import FormatError, format_label_file, parse_label_file

logger = logging.getLogger(__name__)

app: FastAPI = FastAPI(title="Label Converter API", version="0.1.0")

T = TypeVar("T")


class ConversionRequest(BaseModel):
    task_file_path: str = Field(..., description="Server-side path of the task file; images resolve against it")
    options: EnhanceOptions = Field(default_factory=EnhanceOptions)


class PPOCRToLabelStudioRequest(ConversionRequest):
    label_text: str
    full_json: bool = True
    base_server_url: Optional[str] = DEFAULT_BASE_SERVER_URL
    output_mode: OutputMode = OUTPUT_MODE_ANNOTATIONS
    label_name: str = DEFAULT_LABEL_NAME
    image_base_dir: ImageBaseDir = IMAGE_BASE_DIR_TASK_FILE
    input_base_dir: Optional[str] = None


class LabelStudioToPPOCRRequest(ConversionRequest):
    tasks: List[Dict[str, Any]]
    output_dir: str
    base_image_dir: Optional[str] = None


class EnhancePPOCRRequest(ConversionRequest):
    label_text: str


class EnhanceLabelStudioRequest(ConversionRequest):
    tasks: List[Dict[str, Any]]
    base_server_url: Optional[str] = None
    out_dir: Optional[str] = None
    output_mode: OutputMode = OUTPUT_MODE_ANNOTATIONS
    label_name: str = DEFAULT_LABEL_NAME


def _run(call: Callable[[], T]) -> T:
    try:
        return call()
    except DialectError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (FormatError, ValidationError) as exc:
        logger.info("Rejected malformed input: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _events(sink: DiagnosticSink) -> List[Dict[str, Any]]:
    return [event.to_dict() for event in sink.events]


@app.post("/convert/ppocr-to-label-studio")
def convert_ppocr_to_label_studio(req: PPOCRToLabelStudioRequest) -> Dict[str, Any]:
    sink = DiagnosticSink()
    tasks = _run(
        lambda: ppocr_to_label_studio(
            parse_label_file(req.label_text),
            req.task_file_path,
            req.options,
            full=req.full_json,
            output_mode=req.output_mode,
            label_name=req.label_name,
            base_server_url=req.base_server_url,
            image_base_dir=req.image_base_dir,
            input_base_dir=req.input_base_dir,
            sink=sink,
        )
    )
    return {"tasks": tasks, "diagnostics": _events(sink)}


@app.post("/convert/label-studio-to-ppocr")
def convert_label_studio_to_ppocr(req: LabelStudioToPPOCRRequest) -> Dict[str, Any]:
    sink = DiagnosticSink()
    tasks = _run(
        lambda: label_studio_to_ppocr(
            req.tasks,
            req.task_file_path,
            req.options,
            output_dir=req.output_dir,
            base_image_dir=req.base_image_dir,
            sink=sink,
        )
    )
    return {"label_text": format_label_file(tasks), "diagnostics": _events(sink)}


@app.post("/enhance/ppocr")
def enhance_ppocr_labels(req: EnhancePPOCRRequest) -> Dict[str, Any]:
    sink = DiagnosticSink()
    tasks = _run(lambda: enhance_ppocr(parse_label_file(req.label_text), req.task_file_path, req.options, sink=sink))
    return {"label_text": format_label_file(tasks), "diagnostics": _events(sink)}


@app.post("/enhance/label-studio")
def enhance_label_studio_tasks(req: EnhanceLabelStudioRequest) -> Dict[str, Any]:
    sink = DiagnosticSink()
    tasks = _run(
        lambda: enhance_label_studio(
            req.tasks,
            req.task_file_path,
            req.options,
            base_server_url=req.base_server_url,
            out_dir=req.out_dir,
            output_mode=req.output_mode,
            label_name=req.label_name,
            sink=sink,
        )
    )
    return {"tasks": tasks, "diagnostics": _events(sink)}


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
