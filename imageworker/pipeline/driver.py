"""
Pipeline Driver

One run per invocation:

    idle -> downloading -> [loading -> transforming -> post_processing -> emitting]* -> cleanup -> done

`failed` is entered when the source cannot be obtained. Operations run
strictly in list order and each one starts from the downloaded file, never
from a previous operation's result. A failing operation is reported and the
run moves on to the next one.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from imageworker.core.exceptions import ImageWorkerError, SourceUnavailable, StorageError
from imageworker.core.logging import LogContext, get_logger, stage_var, with_logging
from imageworker.core.metrics import record_job_completion, track_operation_latency
from imageworker.pipeline import tiling
from imageworker.pipeline.descriptors import JobConfig, OperationDescriptor
from imageworker.pipeline.output import (
    EncodeOptions,
    OutputSink,
    default_destination,
    extension_for,
    post_process,
)
from imageworker.pipeline.publisher import Publisher, PublishResult
from imageworker.pipeline.registry import TransformRegistry
from imageworker.pipeline.source import SourceProvider, source_filename

logger = get_logger(__name__)

TILE_OPERATION = "tile"


class RunState(str, Enum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    LOADING = "loading"
    TRANSFORMING = "transforming"
    POST_PROCESSING = "post_processing"
    EMITTING = "emitting"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OperationResult:
    op: str
    version: str
    params: Dict[str, Any]
    outputs: List[str] = field(default_factory=list)
    published: List[PublishResult] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and all(result.ok for result in self.published)


@dataclass
class RunReport:
    source: str
    status: str = RunState.IDLE.value
    operations: List[OperationResult] = field(default_factory=list)
    cleanup_error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == RunState.DONE.value and all(op.ok for op in self.operations)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["ok"] = self.ok
        return data


class PipelineDriver:
    def __init__(
        self,
        registry: TransformRegistry,
        source: SourceProvider,
        sink: OutputSink,
        publisher: Publisher,
        tile_workers: int = 1
    ):
        self.registry = registry
        self.source = source
        self.sink = sink
        self.publisher = publisher
        self.tile_workers = tile_workers
        self.state = RunState.IDLE

    def _enter(self, state: RunState):
        self.state = state
        stage_var.set(state.value)

    def run(self, job: JobConfig) -> RunReport:
        filename = source_filename(job.source_image_url)
        report = RunReport(source=filename)

        with LogContext(job_id=filename, stage=RunState.IDLE.value):
            logger.info("worker_started", job=job.redacted())

            self._enter(RunState.DOWNLOADING)
            try:
                source_path = self.source.fetch(job.source_image_url, disable_network=job.disable_network)
            except SourceUnavailable as e:
                self._fail(report, e)
                raise

            self.publisher.check_target()

            for operation in job.operations:
                try:
                    report.operations.append(self.run_operation(source_path, filename, operation))
                except SourceUnavailable as e:
                    self._fail(report, e)
                    raise

            try:
                self._cleanup(job.source_image_keypath)
            except StorageError as e:
                logger.error("cleanup_failed", key=job.source_image_keypath, error=e.message)
                report.cleanup_error = e.to_dict()

            self._enter(RunState.DONE)
            report.status = RunState.DONE.value
            record_job_completion("completed" if report.ok else "completed_with_errors")
            logger.info(
                "worker_finished",
                operations=len(report.operations),
                failed=[op.op for op in report.operations if not op.ok]
            )
            return report

    def _fail(self, report: RunReport, error: ImageWorkerError):
        logger.error("worker_failed", error=error.message, error_type=type(error).__name__, state=self.state.value)
        self._enter(RunState.FAILED)
        report.status = RunState.FAILED.value
        record_job_completion("failed")

    @with_logging("cleanup")
    def _cleanup(self, source_key: Optional[str]):
        self.state = RunState.CLEANUP
        self.publisher.delete_source(source_key)

    def run_operation(self, source_path: Path, filename: str, operation: Mapping[str, Any]) -> OperationResult:
        params = {key: value for key, value in operation.items() if value is not None}
        op = str(params.get("op", ""))
        result = OperationResult(op=op, version=str(params.get("version", "original")), params=params)
        logger.info("operation_started", op=op, params=params)
        start = time.time()

        try:
            descriptor = OperationDescriptor.from_mapping(operation)
            with track_operation_latency(op):
                if descriptor.op == TILE_OPERATION:
                    outputs = self._run_tiling(source_path, filename, descriptor)
                else:
                    outputs = [self._run_transform(source_path, filename, descriptor)]
        except SourceUnavailable:
            raise
        except ImageWorkerError as e:
            result.error = e.to_dict()
        except (OSError, ValueError) as e:
            # Pillow encoder / decoder errors
            result.error = {"error": str(e), "error_type": type(e).__name__, "stage": self.state.value}

        result.duration_ms = int((time.time() - start) * 1000)
        if result.error is not None:
            logger.error(
                "operation_failed",
                op=op,
                params=params,
                error=result.error["error"],
                error_type=result.error["error_type"],
                duration_ms=result.duration_ms
            )
            return result

        result.outputs = [str(path) for path in outputs]
        self._enter(RunState.EMITTING)
        result.published = self.publisher.publish(outputs, descriptor.destination_path, descriptor.version)

        logger.info(
            "operation_completed",
            op=op,
            outputs=result.outputs,
            urls=[published.url for published in result.published if published.url],
            duration_ms=result.duration_ms
        )
        return result

    def _run_transform(self, source_path: Path, filename: str, descriptor: OperationDescriptor) -> Path:
        self._enter(RunState.LOADING)
        image = self.source.open(source_path)

        self._enter(RunState.TRANSFORMING)
        transform = self.registry.resolve(descriptor.op)
        image = transform(image, descriptor)

        self._enter(RunState.POST_PROCESSING)
        image, options = post_process(image, descriptor)

        self._enter(RunState.EMITTING)
        destination = descriptor.destination or default_destination(filename, descriptor)
        return self.sink.write(image, destination, options)

    def _run_tiling(self, source_path: Path, filename: str, descriptor: OperationDescriptor) -> List[Path]:
        grid_size = descriptor.require("num_tiles_width", "num_tiles_height")
        grid_width, grid_height = grid_size["num_tiles_width"], grid_size["num_tiles_height"]

        self._enter(RunState.TRANSFORMING)
        grid = tiling.tile(
            lambda: self.source.open(source_path),
            grid_width,
            grid_height,
            max_workers=self.tile_workers
        )

        self._enter(RunState.POST_PROCESSING)
        processed = tiling.TileGrid(grid_width, grid_height)
        options = EncodeOptions()
        for cell, tile_image in grid.items():
            processed[cell], options = post_process(tile_image, descriptor)

        self._enter(RunState.EMITTING)
        destination = descriptor.destination or default_destination(filename, descriptor)
        if options.format:
            ext = extension_for(options.format)
        else:
            ext = Path(destination).suffix.lstrip(".") or "jpg"

        # Tiles sit beside the merged composite, in the same directory
        basename = str(Path(destination).with_suffix(""))
        outputs = [
            self.sink.write_tile(tile_image, basename, row, col, ext, options)
            for (col, row), tile_image in processed.items()
        ]

        if descriptor.merge:
            merged = tiling.merge(grid_width, grid_height, processed)
            outputs.append(self.sink.write(merged, destination, options))

        return outputs
