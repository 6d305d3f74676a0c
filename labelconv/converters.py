"""Conversion flows between PPOCRLabel and Label Studio, plus image-path resolvers."""

from __future__ import annotations

import logging
import os
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote

import requests

from . import diagnostics
from .adapt_resize import AdaptResizeTransformer
from .config import (
    DEFAULT_BASE_SERVER_URL,
    DEFAULT_LABEL_NAME,
    DEFAULT_LABEL_STUDIO_PRECISION,
    DEFAULT_PPOCR_PRECISION,
    IMAGE_BASE_DIR_INPUT_DIR,
    IMAGE_BASE_DIR_TASK_FILE,
    MAX_WORKERS,
    OUTPUT_MODE_ANNOTATIONS,
    EnhanceOptions,
    ImageBaseDir,
    OutputMode,
)
from .diagnostics import DiagnosticSink, report
from .image import ImageFetchError, fetch_remote_image, is_remote, remote_file_name
from .label_studio import (
    DIALECT_FULL,
    Dialect,
    detect_batch_dialect,
    full_input,
    full_output,
    min_input,
    min_output,
)
from .ppocr import PPOCRLabelTask, ppocr_input, ppocr_output
from .processor import Processor, ResolveImagePathFn
from .sort import SortTransformer
from .transformers import NormalizeTransformer, ResizeTransformer, RoundTransformer, Transformer

logger = logging.getLogger(__name__)

# Characters left untouched by JavaScript's encodeURI, which Label Studio expects.
URI_SAFE_CHARS = ";,/?:@&=+$-_.!~*'()#[]"

PPOCRRecord = Union[PPOCRLabelTask, Dict[str, Any]]


def build_transformers(
    options: EnhanceOptions,
    default_precision: int,
    sink: Optional[DiagnosticSink] = None,
    max_workers: int = MAX_WORKERS,
) -> List[Transformer]:
    """Standard chain: normalize, resize, optional adaptive resize, round, sort."""

    chain: List[Transformer] = [
        NormalizeTransformer(options.normalize_shape, options.use_oriented_box),
        ResizeTransformer(options.width_increment, options.height_increment),
    ]
    if options.adapt_resize:
        chain.append(AdaptResizeTransformer(options.adapt_resize_options, sink, max_workers))
    chain.append(RoundTransformer(options.precision_or(default_precision)))
    chain.append(SortTransformer(options.sort_vertical, options.sort_horizontal))
    return chain


def _posix(path: str) -> str:
    return path.replace(os.sep, "/")


def _with_server_url(path: str, base_server_url: Optional[str]) -> str:
    if base_server_url is None:
        return path
    if base_server_url == "":
        return quote(f"/{path}", safe=URI_SAFE_CHARS)
    return quote(f"{base_server_url.rstrip('/')}/{path}", safe=URI_SAFE_CHARS)


# Input resolvers


def resolve_ppocr_input_path(image_path: str, task_file_path: str) -> str:
    """PPOCRLabel paths are relative to the folder that was opened in the tool.

    When the path repeats the task folder's own name (``ch/img.jpg`` next to
    ``ch/Label.txt``) it is resolved from the parent folder.
    """

    task_dir = os.path.dirname(task_file_path)
    folder_name = os.path.basename(task_dir)
    if folder_name and image_path.startswith(folder_name + "/"):
        return os.path.join(os.path.dirname(task_dir), image_path)
    return os.path.join(task_dir, image_path)


def make_label_studio_input_resolver(
    sink: Optional[DiagnosticSink] = None, session: requests.Session | None = None
) -> ResolveImagePathFn:
    """Remote images are downloaded next to the task file; local paths lose their leading ``/``."""

    def resolve(image_path: str, task_file_path: str) -> str:
        task_dir = os.path.dirname(task_file_path)
        if is_remote(image_path):
            try:
                return fetch_remote_image(image_path, task_dir or ".", session=session)
            except ImageFetchError as exc:
                report(
                    sink,
                    diagnostics.IMAGE_MISSING,
                    str(exc),
                    image_path=image_path,
                    source=logger,
                )
                try:
                    return os.path.join(task_dir, remote_file_name(image_path))
                except ImageFetchError:
                    return image_path
        return os.path.join(task_dir, image_path.lstrip("/"))

    return resolve


# Output resolvers


def make_ppocr_output_resolver(output_dir: str, base_image_dir: Optional[str] = None) -> ResolveImagePathFn:
    def resolve(image_path: str, task_file_path: str) -> str:
        prefix = base_image_dir or os.path.basename(os.path.normpath(output_dir))
        return _posix(os.path.join(prefix, os.path.basename(image_path)))

    return resolve


def resolve_enhanced_ppocr_output_path(image_path: str, task_file_path: str) -> str:
    """Keep PPOCRLabel's ``<task folder>/<relative path>`` convention."""
    task_dir = os.path.dirname(task_file_path)
    folder_name = os.path.basename(task_dir)
    relative = os.path.relpath(image_path, task_dir) if task_dir else image_path
    return _posix(os.path.join(folder_name, relative))


def make_label_studio_output_resolver(
    base_server_url: Optional[str] = DEFAULT_BASE_SERVER_URL,
    image_base_dir: ImageBaseDir = IMAGE_BASE_DIR_TASK_FILE,
    input_base_dir: Optional[str] = None,
) -> ResolveImagePathFn:
    def resolve(image_path: str, task_file_path: str) -> str:
        if image_base_dir == IMAGE_BASE_DIR_INPUT_DIR and input_base_dir:
            relative = _posix(os.path.relpath(image_path, input_base_dir))
        else:
            relative = os.path.basename(image_path)
        return _with_server_url(relative, base_server_url)

    return resolve


def make_enhanced_label_studio_output_resolver(
    base_server_url: Optional[str] = None, out_dir: Optional[str] = None
) -> ResolveImagePathFn:
    def resolve(image_path: str, task_file_path: str) -> str:
        path = _posix(os.path.relpath(image_path, out_dir)) if out_dir else _posix(image_path)
        if base_server_url:
            return quote(f"{base_server_url.rstrip('/')}/{path.lstrip('/')}", safe=URI_SAFE_CHARS)
        return path

    return resolve


# Flows


def _renumber(records: List[Dict[str, Any]], full: bool) -> List[Dict[str, Any]]:
    """Give tasks built from ``Label.txt`` rows sequential numeric ids."""
    for number, record in enumerate(records, start=1):
        record["id"] = number
        if full:
            record["inner_id"] = number
            for entry in [*record["annotations"], *record["predictions"]]:
                entry["task"] = number
            for annotation in record["annotations"]:
                annotation["id"] = number
        else:
            record["annotation_id"] = number
    return records


def ppocr_to_label_studio(
    tasks: Sequence[PPOCRRecord],
    task_file_path: str,
    options: Optional[EnhanceOptions] = None,
    *,
    full: bool = True,
    output_mode: OutputMode = OUTPUT_MODE_ANNOTATIONS,
    label_name: str = DEFAULT_LABEL_NAME,
    base_server_url: Optional[str] = DEFAULT_BASE_SERVER_URL,
    image_base_dir: ImageBaseDir = IMAGE_BASE_DIR_TASK_FILE,
    input_base_dir: Optional[str] = None,
    sink: Optional[DiagnosticSink] = None,
    max_workers: Optional[int] = None,
) -> List[Dict[str, Any]]:
    options = options or EnhanceOptions()
    if full:
        output = partial(full_output, output_mode=output_mode, label_name=label_name)
    else:
        output = partial(min_output, label_name=label_name)
    processor: Processor[PPOCRRecord, Dict[str, Any]] = Processor(
        partial(ppocr_input, sink=sink),
        output,
        build_transformers(options, DEFAULT_LABEL_STUDIO_PRECISION, sink),
    )
    results = processor.process_many(
        tasks,
        task_file_path,
        resolve_ppocr_input_path,
        make_label_studio_output_resolver(base_server_url, image_base_dir, input_base_dir),
        max_workers=max_workers,
    )
    logger.info("Converted %d PPOCRLabel tasks from %s", len(results), task_file_path)
    return _renumber(results, full)


def label_studio_to_ppocr(
    tasks: Sequence[Dict[str, Any]],
    task_file_path: str,
    options: Optional[EnhanceOptions] = None,
    *,
    output_dir: str,
    base_image_dir: Optional[str] = None,
    dialect: Optional[Dialect] = None,
    sink: Optional[DiagnosticSink] = None,
    session: requests.Session | None = None,
    max_workers: Optional[int] = None,
) -> List[PPOCRLabelTask]:
    options = options or EnhanceOptions()
    dialect = dialect or detect_batch_dialect(tasks)
    adapter = partial(full_input, sink=sink) if dialect == DIALECT_FULL else partial(min_input, sink=sink)
    processor: Processor[Dict[str, Any], PPOCRLabelTask] = Processor(
        adapter,
        ppocr_output,
        build_transformers(options, DEFAULT_PPOCR_PRECISION, sink),
    )
    results = processor.process_many(
        tasks,
        task_file_path,
        make_label_studio_input_resolver(sink, session),
        make_ppocr_output_resolver(output_dir, base_image_dir),
        max_workers=max_workers,
    )
    logger.info("Converted %d Label Studio (%s) tasks from %s", len(results), dialect, task_file_path)
    return results


def enhance_ppocr(
    tasks: Sequence[PPOCRRecord],
    task_file_path: str,
    options: Optional[EnhanceOptions] = None,
    *,
    sink: Optional[DiagnosticSink] = None,
    max_workers: Optional[int] = None,
) -> List[PPOCRLabelTask]:
    options = options or EnhanceOptions()
    processor: Processor[PPOCRRecord, PPOCRLabelTask] = Processor(
        partial(ppocr_input, sink=sink),
        ppocr_output,
        build_transformers(options, DEFAULT_PPOCR_PRECISION, sink),
    )
    return processor.process_many(
        tasks,
        task_file_path,
        resolve_ppocr_input_path,
        resolve_enhanced_ppocr_output_path,
        max_workers=max_workers,
    )


def enhance_label_studio(
    tasks: Sequence[Dict[str, Any]],
    task_file_path: str,
    options: Optional[EnhanceOptions] = None,
    *,
    dialect: Optional[Dialect] = None,
    base_server_url: Optional[str] = None,
    out_dir: Optional[str] = None,
    output_mode: OutputMode = OUTPUT_MODE_ANNOTATIONS,
    label_name: str = DEFAULT_LABEL_NAME,
    sink: Optional[DiagnosticSink] = None,
    session: requests.Session | None = None,
    max_workers: Optional[int] = None,
) -> List[Dict[str, Any]]:
    options = options or EnhanceOptions()
    dialect = dialect or detect_batch_dialect(tasks)
    if dialect == DIALECT_FULL:
        adapter = partial(full_input, sink=sink)
        output = partial(full_output, output_mode=output_mode, label_name=label_name)
    else:
        adapter = partial(min_input, sink=sink)
        output = partial(min_output, label_name=label_name)
    processor: Processor[Dict[str, Any], Dict[str, Any]] = Processor(
        adapter,
        output,
        build_transformers(options, DEFAULT_LABEL_STUDIO_PRECISION, sink),
    )
    return processor.process_many(
        tasks,
        task_file_path,
        make_label_studio_input_resolver(sink, session),
        make_enhanced_label_studio_output_resolver(base_server_url, out_dir),
        max_workers=max_workers,
    )


__all__ = [
    "build_transformers",
    "resolve_ppocr_input_path",
    "make_label_studio_input_resolver",
    "make_ppocr_output_resolver",
    "resolve_enhanced_ppocr_output_path",
    "make_label_studio_output_resolver",
    "make_enhanced_label_studio_output_resolver",
    "ppocr_to_label_studio",
    "label_studio_to_ppocr",
    "enhance_ppocr",
    "enhance_label_studio",
]
