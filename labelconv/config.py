"""Defaults and option models for the conversion pipeline."""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Reading order
SORT_VERTICAL_NONE = "none"
SORT_VERTICAL_TOP_BOTTOM = "top-bottom"
SORT_VERTICAL_BOTTOM_TOP = "bottom-top"
SORT_HORIZONTAL_NONE = "none"
SORT_HORIZONTAL_LTR = "ltr"
SORT_HORIZONTAL_RTL = "rtl"

VerticalSort = Literal["none", "top-bottom", "bottom-top"]
HorizontalSort = Literal["none", "ltr", "rtl"]

# Shape normalization
SHAPE_NORMALIZE_NONE = "none"
SHAPE_NORMALIZE_RECTANGLE = "rectangle"

ShapeNormalize = Literal["none", "rectangle"]

# Label Studio output
OUTPUT_MODE_ANNOTATIONS = "annotations"
OUTPUT_MODE_PREDICTIONS = "predictions"

OutputMode = Literal["annotations", "predictions"]

IMAGE_BASE_DIR_TASK_FILE = "task-file"
IMAGE_BASE_DIR_INPUT_DIR = "input-dir"

ImageBaseDir = Literal["task-file", "input-dir"]

DEFAULT_LABEL_NAME = "Text"
DEFAULT_BASE_SERVER_URL = "http://localhost:8081"
DEFAULT_PPOCR_FILE_NAME = "Label.txt"
DEFAULT_MODEL_VERSION = "ppocr-v1"

# Label Studio keeps full precision, PPOCRLabel stores integers
DEFAULT_LABEL_STUDIO_PRECISION = -1
DEFAULT_PPOCR_PRECISION = 0

# Adaptive resize
DEFAULT_ADAPT_RESIZE_THRESHOLD = 128
DEFAULT_ADAPT_RESIZE_MARGIN = 5
DEFAULT_ADAPT_RESIZE_MIN_COMPONENT_SIZE = 10
DEFAULT_ADAPT_RESIZE_MAX_COMPONENT_SIZE = 100_000
DEFAULT_ADAPT_RESIZE_OUTLIER_PERCENTILE = 2.0
DEFAULT_ADAPT_RESIZE_MORPHOLOGY_SIZE = 2
DEFAULT_ADAPT_RESIZE_MAX_HORIZONTAL_EXPANSION = 50
DEFAULT_ADAPT_RESIZE_TIMEOUT_S = 30.0
MAX_ADAPT_RESIZE_BOX_SIZE = 3000  # boxes above this side length are left alone
MAX_ADAPT_RESIZE_IMAGE_SIZE = 10_000
DEFAULT_ADAPT_RESIZE_USE_ADAPTIVE_THRESHOLD = False
ADAPTIVE_THRESHOLD_OFFSET = 10  # added to the Otsu level before clamping
ADAPTIVE_THRESHOLD_MIN = 100
ADAPTIVE_THRESHOLD_MAX = 200
DEFAULT_ADAPT_RESIZE_PADDING_CHECK_WIDTH = 0  # 0 disables padding-strip validation
DEFAULT_ADAPT_RESIZE_MIN_PADDING_BRIGHTNESS = 200
DEFAULT_ADAPT_RESIZE_MIN_PADDING_RATIO = 0.8
MAX_PADDING_VERTICAL_STEPS = 20

# Runtime knobs
FETCH_TIMEOUT_S = float(os.getenv("LABELCONV_FETCH_TIMEOUT_S", "20"))
MAX_WORKERS = int(os.getenv("LABELCONV_MAX_WORKERS", "8"))


class AdaptResizeOptions(BaseModel):
    """Parameters of the content-adaptive box refinement."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    threshold: int = Field(default=DEFAULT_ADAPT_RESIZE_THRESHOLD, ge=0, le=255)
    margin: int = Field(default=DEFAULT_ADAPT_RESIZE_MARGIN, ge=0)
    min_component_size: int = Field(default=DEFAULT_ADAPT_RESIZE_MIN_COMPONENT_SIZE, ge=0)
    max_component_size: int = Field(default=DEFAULT_ADAPT_RESIZE_MAX_COMPONENT_SIZE, ge=1)
    outlier_percentile: float = Field(default=DEFAULT_ADAPT_RESIZE_OUTLIER_PERCENTILE, ge=0, le=100)
    morphology_size: int = Field(default=DEFAULT_ADAPT_RESIZE_MORPHOLOGY_SIZE, ge=0)
    max_horizontal_expansion: int = Field(default=DEFAULT_ADAPT_RESIZE_MAX_HORIZONTAL_EXPANSION, ge=0)
    timeout_s: float = Field(default=DEFAULT_ADAPT_RESIZE_TIMEOUT_S, gt=0)
    use_adaptive_threshold: bool = DEFAULT_ADAPT_RESIZE_USE_ADAPTIVE_THRESHOLD
    padding_check_width: int = Field(default=DEFAULT_ADAPT_RESIZE_PADDING_CHECK_WIDTH, ge=0)
    min_padding_brightness: int = Field(default=DEFAULT_ADAPT_RESIZE_MIN_PADDING_BRIGHTNESS, ge=0, le=255)
    min_padding_ratio: float = Field(default=DEFAULT_ADAPT_RESIZE_MIN_PADDING_RATIO, ge=0, le=1)
    separator_white_ratio: float = Field(default=0.8, ge=0, le=1)
    separator_sample_size: int = Field(default=20, ge=1)
    separator_early_exit_samples: int = Field(default=5, ge=1)
    separator_early_exit_threshold: float = Field(default=0.5, ge=0, le=1)

    @model_validator(mode="after")
    def _check_component_range(self) -> "AdaptResizeOptions":
        if self.min_component_size > self.max_component_size:
            raise ValueError("min_component_size must not exceed max_component_size")
        return self


class EnhanceOptions(BaseModel):
    """Geometry options shared by every conversion flow."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sort_vertical: VerticalSort = SORT_VERTICAL_NONE
    sort_horizontal: HorizontalSort = SORT_HORIZONTAL_NONE
    normalize_shape: ShapeNormalize = SHAPE_NORMALIZE_NONE
    use_oriented_box: bool = False
    width_increment: float = 0.0
    height_increment: float = 0.0
    precision: Optional[int] = Field(default=None, ge=-1)
    adapt_resize: bool = False
    adapt_resize_options: AdaptResizeOptions = Field(default_factory=AdaptResizeOptions)

    def precision_or(self, default: int) -> int:
        return default if self.precision is None else self.precision


__all__ = [
    "AdaptResizeOptions",
    "EnhanceOptions",
    "VerticalSort",
    "HorizontalSort",
    "ShapeNormalize",
    "OutputMode",
    "ImageBaseDir",
]
