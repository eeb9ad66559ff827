"""Shared Prometheus metric definitions for the pose pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from prometheus_client import Counter, Gauge, Histogram

LABEL_NAMES = ("pipeline", "task_id", "worker_id")
DEFAULT_TASK_ID = "unknown"


# Request lifecycle
pipeline_frames_submitted_total = Counter(
    "pipeline_frames_submitted_total",
    "Total number of frames submitted to the inference runtime.",
    LABEL_NAMES,
)

pipeline_frames_retrieved_total = Counter(
    "pipeline_frames_retrieved_total",
    "Total number of completed frames handed to the consumer.",
    LABEL_NAMES,
)

pipeline_async_failures_total = Counter(
    "pipeline_async_failures_total",
    "Total number of failures captured inside completion callbacks.",
    LABEL_NAMES,
)

pipeline_frame_latency_seconds = Histogram(
    "pipeline_frame_latency_seconds",
    "Latency in seconds between submission and retrieval of a frame.",
    LABEL_NAMES,
    buckets=(
        0.001,
        0.005,
        0.01,
        0.02,
        0.05,
        0.1,
        0.25,
        0.5,
        1,
        2,
        5,
        10,
    ),
)

pipeline_requests_in_use = Gauge(
    "pipeline_requests_in_use",
    "Number of request slots currently busy.",
    LABEL_NAMES,
)


# Decoder output
decoder_poses_per_frame = Histogram(
    "decoder_poses_per_frame",
    "Number of poses decoded from a single frame.",
    LABEL_NAMES,
    buckets=(0, 1, 2, 3, 5, 8, 13, 21, 34),
)


@dataclass
class MetricsLabelContext:
    """Helper for reusing Prometheus labels with dynamic task ids."""

    pipeline: str
    worker_id: str
    initial_task_id: Optional[str] = None

    def __post_init__(self) -> None:
        self._base_labels = {
            "pipeline": self.pipeline or "unknown",
            "worker_id": str(self.worker_id) if self.worker_id is not None else "unknown",
        }
        initial = self.initial_task_id or DEFAULT_TASK_ID
        self._label_cache: Dict[str, Dict[str, str]] = {}
        self._current_task_id = DEFAULT_TASK_ID
        self.labels_for(initial)

    def labels_for(self, task_id: Optional[str]) -> Dict[str, str]:
        """Return labels for the provided task id and cache the result."""

        normalized = str(task_id) if task_id else DEFAULT_TASK_ID
        if normalized not in self._label_cache:
            labels = {**self._base_labels, "task_id": normalized}
            self._label_cache[normalized] = labels
        self._current_task_id = normalized
        return self._label_cache[normalized]

    def with_metric(self, metric, task_id: Optional[str] = None):
        """Return a labelled child for the provided metric."""

        labels = self.labels_for(task_id or self._current_task_id)
        return metric.labels(**labels)
