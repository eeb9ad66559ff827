from .async_pipeline import AsyncPipeline, PoseResult
from .pipeline_base import (
    EMPTY_FRAME_ID,
    PerformanceInfo,
    PipelineBase,
    PipelineConfig,
    RequestResult,
)
from .requests_pool import POLICY_BLOCK, POLICY_FAIL, RequestSlot, RequestSlotPool
from .runtime import ExecutionRuntime, InferRequest, OnnxRuntimeBackend, ThreadPoolBackend

__all__ = [
    'AsyncPipeline', 'PoseResult',
    'EMPTY_FRAME_ID', 'PerformanceInfo', 'PipelineBase', 'PipelineConfig', 'RequestResult',
    'POLICY_BLOCK', 'POLICY_FAIL', 'RequestSlot', 'RequestSlotPool',
    'ExecutionRuntime', 'InferRequest', 'OnnxRuntimeBackend', 'ThreadPoolBackend',
]
