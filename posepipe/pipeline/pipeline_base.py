"""
Base class for asynchronous inference pipelines.

Requests are submitted with increasing frame ids and complete on threads
owned by the execution runtime, in any order. Completed outputs are buffered
by frame id and handed back to the consumer strictly in submission order.
"""
import functools
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set

import numpy as np

from posepipe.errors import AsyncFailureError, EmptyResultError, PoolExhaustedError
from posepipe.metrics.prometheus import (
    MetricsLabelContext,
    pipeline_async_failures_total,
    pipeline_frame_latency_seconds,
    pipeline_frames_retrieved_total,
    pipeline_frames_submitted_total,
    pipeline_requests_in_use,
)

from .requests_pool import POLICY_BLOCK, RequestSlot, RequestSlotPool
from .runtime import ExecutionRuntime

logger = logging.getLogger(__name__)

EMPTY_FRAME_ID = -1


@dataclass
class RequestResult:
    frame_id: int = EMPTY_FRAME_ID
    outputs: Dict[str, np.ndarray] = field(default_factory=dict)
    start_time: float = 0.0
    meta: Any = None

    @property
    def is_empty(self) -> bool:
        return not self.outputs

    def first_output(self) -> np.ndarray:
        """Return the first output tensor, for models with a single output."""
        if not self.outputs:
            raise EmptyResultError("Outputs map is empty")
        return next(iter(self.outputs.values()))


@dataclass
class PerformanceInfo:
    frames_count: int = 0
    latency_sum: float = 0.0
    start_time: float = field(default_factory=time.perf_counter)
    num_requests_in_use: int = 0
    fps: float = 0.0

    @property
    def average_latency(self) -> float:
        return self.latency_sum / self.frames_count if self.frames_count else 0.0


@dataclass
class PipelineConfig:
    num_requests: int = 2
    pool_policy: str = POLICY_BLOCK
    output_names: Optional[List[str]] = None
    name: str = "pipeline"

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "PipelineConfig":
        return cls(
            num_requests=config.get('num_requests', 2),
            pool_policy=config.get('pool_policy', POLICY_BLOCK),
            output_names=config.get('output_names'),
            name=config.get('name', 'pipeline'),
        )


class PipelineBase:
    """Submits requests to a runtime and collects their outputs in frame order."""

    def __init__(self, runtime: ExecutionRuntime, config: Optional[PipelineConfig] = None,
                 task_id: Optional[str] = None):
        self.config = config or PipelineConfig()
        self.runtime = runtime
        self.output_names = list(self.config.output_names or runtime.output_names)

        self._lock = threading.Lock()
        self._condition = threading.Condition(self._lock)
        self.requests_pool = RequestSlotPool(runtime, self.config.num_requests,
                                             policy=self.config.pool_policy,
                                             condition=self._condition)

        self._completed: Dict[int, RequestResult] = {}
        self._failed_frames: Set[int] = set()
        self._callback_exception: Optional[AsyncFailureError] = None
        self._input_frame_id = 0
        self._output_frame_id = 1
        self._perf_info = PerformanceInfo()

        self._metrics_context = MetricsLabelContext(
            pipeline=self.config.name,
            worker_id="pipeline",
            initial_task_id=task_id,
        )

    def _raise_pending_failure_locked(self) -> None:
        if self._callback_exception is not None:
            error, self._callback_exception = self._callback_exception, None
            raise error

    def submit(self, inputs: Dict[str, np.ndarray], meta: Any = None,
               timeout: Optional[float] = None) -> int:
        """Dispatch one request and return its frame id without waiting for it."""
        with self._condition:
            self._raise_pending_failure_locked()

        slot = self.requests_pool.acquire(timeout=timeout)
        if slot is None:
            raise PoolExhaustedError(f"No request slot became idle within {timeout}s")

        with self._condition:
            self._input_frame_id += 1
            frame_id = self._input_frame_id

        start_time = time.perf_counter()
        callback = functools.partial(self._on_processing_completed, frame_id, slot, start_time, meta)
        try:
            slot.request.start_async(inputs, callback)
        except Exception:
            with self._condition:
                self._failed_frames.add(frame_id)
                self.requests_pool.release_locked(slot)
                self._condition.notify_all()
            raise

        self._metrics_context.with_metric(pipeline_frames_submitted_total).inc()
        self._metrics_context.with_metric(pipeline_requests_in_use).set(self.requests_pool.in_use_count())
        logger.debug(f"Submitted frame {frame_id} on slot {slot.index}")
        return frame_id

    def _on_processing_completed(self, frame_id: int, slot: RequestSlot, start_time: float,
                                 meta: Any, error: Optional[BaseException]) -> None:
        # Runs on a runtime thread: never raise from here.
        result = None
        failure = None
        try:
            if error is not None:
                raise error
            result = RequestResult(
                frame_id=frame_id,
                outputs={name: np.array(slot.request.get_output(name), copy=True) for name in self.output_names},
                start_time=start_time,
                meta=meta,
            )
        except Exception as e:
            failure = AsyncFailureError(f"Processing of frame {frame_id} failed: {e}", frame_id=frame_id)
            failure.__cause__ = e

        with self._condition:
            if failure is None:
                self._completed[frame_id] = result
            else:
                self._failed_frames.add(frame_id)
                if self._callback_exception is None:
                    self._callback_exception = failure
            self.requests_pool.release_locked(slot)
            self._condition.notify_all()

        if failure is not None:
            logger.error(str(failure))
            self._metrics_context.with_metric(pipeline_async_failures_total).inc()

    def _skip_failed_frames_locked(self) -> None:
        while self._output_frame_id in self._failed_frames:
            self._failed_frames.discard(self._output_frame_id)
            self._output_frame_id += 1

    def get_result(self) -> RequestResult:
        """Return the next result in frame order, or an empty result if it is not ready."""
        with self._condition:
            self._raise_pending_failure_locked()
            self._skip_failed_frames_locked()
            result = self._completed.pop(self._output_frame_id, None)
            if result is None:
                return RequestResult()
            self._output_frame_id += 1

            now = time.perf_counter()
            latency = now - result.start_time
            self._perf_info.frames_count += 1
            self._perf_info.latency_sum += latency
            elapsed = now - self._perf_info.start_time
            self._perf_info.fps = self._perf_info.frames_count / elapsed if elapsed > 0 else 0.0
            self._perf_info.num_requests_in_use = self.requests_pool.in_use_count_locked()
            in_use = self._perf_info.num_requests_in_use

        self._metrics_context.with_metric(pipeline_frames_retrieved_total).inc()
        self._metrics_context.with_metric(pipeline_frame_latency_seconds).observe(latency)
        self._metrics_context.with_metric(pipeline_requests_in_use).set(in_use)
        return result

    def wait_for_data(self, timeout: Optional[float] = None) -> bool:
        """Block until the next frame in order is available.

        Returns False if ``timeout`` expires first. A failure captured in a
        completion callback is raised here.
        """
        with self._condition:
            def ready():
                self._skip_failed_frames_locked()
                return self._callback_exception is not None or self._output_frame_id in self._completed

            available = self._condition.wait_for(ready, timeout)
            self._raise_pending_failure_locked()
            return available

    def wait_for_total_completion(self, timeout: Optional[float] = None) -> bool:
        return self.requests_pool.wait_for_total_completion(timeout)

    def is_ready_to_process(self) -> bool:
        return self.requests_pool.has_idle_slot()

    def get_performance_info(self) -> PerformanceInfo:
        with self._condition:
            self._perf_info.num_requests_in_use = self.requests_pool.in_use_count_locked()
            return replace(self._perf_info)

    @property
    def last_frame_id(self) -> int:
        """Frame id assigned to the most recent submission (0 before any)."""
        with self._condition:
            return self._input_frame_id
