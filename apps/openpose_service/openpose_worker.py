#!/usr/bin/env python3
"""
OpenPose Worker for multi-person pose estimation.
"""
import logging
import time
from typing import Any, Dict, Optional, Tuple

import numpy as np

from core.models.openpose_model import OpenPoseModel
from posepipe.base_worker import BaseWorker
from posepipe.models import FrameResultMessage, PoseMessage
from posepipe.pipeline import AsyncPipeline, OnnxRuntimeBackend, PipelineConfig, PoseResult
from posepipe.utils import ConfigLoader, setup_logging

logger = logging.getLogger(__name__)


def load_model_config(config_path: str, task_id: Optional[str] = None) -> Dict[str, Any]:
    """Build an OpenPoseWorker model config from a YAML file.

    Reads the ``openpose`` and ``pipeline`` sections and applies the
    ``global.log_level`` setting.
    """
    loader = ConfigLoader(config_path)
    loader.load()
    setup_logging(loader.section('global').get('log_level', 'INFO'))

    model_config = dict(loader.section('openpose'))
    model_config['pipeline'] = dict(loader.section('pipeline'))
    if task_id is not None:
        model_config['task_id'] = task_id
    return model_config


class OpenPoseWorker(BaseWorker):
    """OpenPose worker: raw frames tensors in, decoded pose messages out.

    ``model_config`` holds the decoder settings of the ``openpose`` section
    plus ``onnx_model`` (or a ready ``runtime`` object) and an optional
    ``pipeline`` mapping for the request pool.
    """

    def _model_init(self):
        """Initialize the OpenPose model and its asynchronous pipeline."""
        try:
            self.model = OpenPoseModel(self.model_config)
            runtime = self.model_config.get('runtime')
            if runtime is None:
                runtime = OnnxRuntimeBackend(
                    self.model_config['onnx_model'],
                    device=self.device,
                    intra_op_num_threads=int(self.model_config.get('intra_op_num_threads', 0)),
                )
            pipeline_config = PipelineConfig.from_dict(self.model_config.get('pipeline', {}))
            self.pipeline = AsyncPipeline(self.model, runtime, pipeline_config, task_id=self.task_id)
            self.input_name = next(iter(runtime.get_input_shapes()))

            logger.info(f"OpenPose pipeline initialized on device {self.device} "
                        f"with {pipeline_config.num_requests} requests")

        except Exception as e:
            logger.error(f"Failed to initialize OpenPose model: {e}")
            raise

    def _prepare_inputs(self, inputs: Dict[str, Any]) -> Tuple[Dict[str, np.ndarray], Any]:
        tensor = inputs.get('tensor')
        if tensor is None:
            raise ValueError(f"Worker {self.worker_id} received a message without 'tensor'")

        meta = {
            'source_frame_id': inputs.get('frame_id'),
            'task_id': inputs.get('task_id', self.task_id),
            'image_size': inputs.get('image_size'),
            'pad': inputs.get('pad', (0, 0, 0, 0)),
        }
        return {self.input_name: np.asarray(tensor, dtype=np.float32)}, meta

    def _format_results(self, result: PoseResult) -> Dict[str, Any]:
        poses = []
        for pose in result.poses:
            mask = pose.present_mask
            keypoints = [kp.tolist() if present else None for kp, present in zip(pose.keypoints, mask)]
            poses.append(PoseMessage(keypoints=keypoints, score=pose.score, num_joints=int(mask.sum())))

        meta = result.meta or {}
        message = FrameResultMessage(
            frame_id=meta.get('source_frame_id') if meta.get('source_frame_id') is not None else result.frame_id,
            task_id=meta.get('task_id'),
            model=self.model.model_tag,
            poses=poses,
            latency_ms=(time.perf_counter() - result.start_time) * 1000,
            metadata={'pipeline_frame_id': result.frame_id},
        )
        return message.model_dump()

    def close(self) -> None:
        super().close()
        self.model.close()
