"""Prometheus metric helpers for the pose pipeline."""

from .prometheus import *  # noqa: F401,F403

__all__ = [
    'MetricsLabelContext',
    'pipeline_frames_submitted_total',
    'pipeline_frames_retrieved_total',
    'pipeline_async_failures_total',
    'pipeline_frame_latency_seconds',
    'pipeline_requests_in_use',
    'decoder_poses_per_frame',
]
