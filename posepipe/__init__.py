# Import errors
from .errors import (
    AsyncFailureError,
    EmptyResultError,
    PipelineError,
    PoolExhaustedError,
    ShapeMismatchError,
)

# Import pipeline
from .pipeline import *

# Import workers and io
from .base_worker import BaseWorker
from .io import QueueInput, QueueOutput

# Import utilities
from .utils import *

__version__ = "1.0.0"

__all__ = [
    # Errors
    'PipelineError', 'ShapeMismatchError', 'EmptyResultError',
    'PoolExhaustedError', 'AsyncFailureError',
    # Pipeline (imported from .pipeline)
    'AsyncPipeline', 'PoseResult',
    'PerformanceInfo', 'PipelineBase', 'PipelineConfig', 'RequestResult',
    'RequestSlotPool', 'ExecutionRuntime', 'InferRequest',
    'OnnxRuntimeBackend', 'ThreadPoolBackend',
    # Workers and io
    'BaseWorker', 'QueueInput', 'QueueOutput',
    # Utilities (imported from .utils)
    'setup_logging',
    'ConfigLoader',
]
