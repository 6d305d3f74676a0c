"""Input adapter → transformer chain → output adapter pipeline."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Generic, List, Optional, Protocol, Sequence, TypeVar

from .config import MAX_WORKERS
from .transformers import Transformer
from .types import UnifiedOCRTask

logger = logging.getLogger(__name__)

TIn = TypeVar("TIn")
TOut = TypeVar("TOut")
TIn_contra = TypeVar("TIn_contra", contravariant=True)
TOut_co = TypeVar("TOut_co", covariant=True)

ImagePathResolver = Callable[[str], str]
ResolveImagePathFn = Callable[[str, str], str]


class InputAdapter(Protocol[TIn_contra]):
    def __call__(self, record: TIn_contra, resolve_image_path: ImagePathResolver) -> UnifiedOCRTask: ...


class OutputAdapter(Protocol[TOut_co]):
    def __call__(self, task: UnifiedOCRTask, resolve_image_path: ImagePathResolver) -> TOut_co: ...


class Processor(Generic[TIn, TOut]):
    """Run one record through the adapters and the transformer chain.

    Adapter options are bound before construction (``functools.partial``);
    the processor itself only wires resolvers and folds transformers in order.
    """

    def __init__(
        self,
        input_adapter: InputAdapter[TIn],
        output_adapter: OutputAdapter[TOut],
        transformers: Sequence[Transformer] = (),
    ) -> None:
        self.input_adapter = input_adapter
        self.output_adapter = output_adapter
        self.transformers = list(transformers)

    def process(
        self,
        record: TIn,
        task_file_path: str,
        resolve_input_image_path: ResolveImagePathFn,
        resolve_output_image_path: ResolveImagePathFn,
    ) -> TOut:
        task = self.input_adapter(record, lambda path: resolve_input_image_path(path, task_file_path))
        for transformer in self.transformers:
            boxes = transformer.apply(task["boxes"], task["image_path"])
            task = {**task, "boxes": boxes}  # type: ignore[assignment]
        return self.output_adapter(task, lambda path: resolve_output_image_path(path, task_file_path))

    def process_many(
        self,
        records: Sequence[TIn],
        task_file_path: str,
        resolve_input_image_path: ResolveImagePathFn,
        resolve_output_image_path: ResolveImagePathFn,
        max_workers: Optional[int] = None,
    ) -> List[TOut]:
        """Process records concurrently, keeping input order.

        Every record runs to completion; if any failed, the first failure in
        input order is re-raised afterwards.
        """

        if not records:
            return []
        workers = max(1, min(max_workers or MAX_WORKERS, len(records)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(
                    self.process, record, task_file_path, resolve_input_image_path, resolve_output_image_path
                )
                for record in records
            ]

        results: List[TOut] = []
        first_error: BaseException | None = None
        for index, future in enumerate(futures):
            error = future.exception()
            if error is not None:
                logger.warning("Task %d of %s failed: %s", index, task_file_path, error)
                if first_error is None:
                    first_error = error
                continue
            results.append(future.result())
        if first_error is not None:
            raise first_error
        return results


__all__ = ["Processor", "InputAdapter", "OutputAdapter", "ImagePathResolver", "ResolveImagePathFn"]
