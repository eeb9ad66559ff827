"""
Pipeline that binds a postprocessing model to asynchronous inference.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from posepipe.metrics.prometheus import decoder_poses_per_frame

from .pipeline_base import PipelineBase, PipelineConfig
from .runtime import ExecutionRuntime

logger = logging.getLogger(__name__)


@dataclass
class PoseResult:
    frame_id: int
    poses: List = field(default_factory=list)
    meta: Any = None
    start_time: float = 0.0


class AsyncPipeline(PipelineBase):
    """Submits preprocessed tensors and returns postprocessed results in frame order.

    ``model`` must provide ``validate_runtime(input_shapes, output_shapes)``
    and ``postprocess(result)``. Validation runs here, so shape problems
    surface at construction rather than on the first frame.
    """

    def __init__(self, model, runtime: ExecutionRuntime, config: Optional[PipelineConfig] = None,
                 task_id: Optional[str] = None):
        model.validate_runtime(runtime.get_input_shapes(), runtime.get_output_shapes())
        super().__init__(runtime, config, task_id=task_id)
        self.model = model

    def submit_data(self, inputs: Dict[str, np.ndarray], meta: Any = None,
                    timeout: Optional[float] = None) -> int:
        return self.submit(inputs, meta=meta, timeout=timeout)

    def get_pose_result(self) -> Optional[PoseResult]:
        """Postprocess the next frame in order, or return None if it is not ready."""
        result = self.get_result()
        if result.is_empty:
            return None

        poses = self.model.postprocess(result)
        self._metrics_context.with_metric(decoder_poses_per_frame).observe(len(poses))
        return PoseResult(frame_id=result.frame_id, poses=poses, meta=result.meta,
                          start_time=result.start_time)
