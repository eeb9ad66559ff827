"""
Shared fixtures: a manually driven runtime and synthetic OpenPose maps.
"""
import os
import sys
import threading
from typing import Dict, List, Optional

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from posepipe.pipeline.runtime import ExecutionRuntime, InferRequest  # noqa: E402


class ManualRequest(InferRequest):

    def __init__(self, runtime: "ManualRuntime"):
        self.runtime = runtime
        self.outputs: Dict[str, np.ndarray] = {}

    def start_async(self, inputs, callback):
        with self.runtime.lock:
            self.runtime.pending.append((self, inputs, callback))

    def get_output(self, name):
        return self.outputs[name]


class ManualRuntime(ExecutionRuntime):
    """Runtime whose requests complete only when a test says so.

    The n-th submitted request is frame ``n``; ``complete(frame_id)`` fires its
    callback with an output holding the frame id.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.pending: List = []
        self.created = 0

    def create_request(self) -> InferRequest:
        self.created += 1
        return ManualRequest(self)

    def get_input_shapes(self):
        return {'data': (1, 3, 8, 8)}

    def get_output_shapes(self):
        return {'out': (1,)}

    def complete(self, frame_id: int, error: Optional[BaseException] = None, outputs=None):
        with self.lock:
            request, inputs, callback = self.pending[frame_id - 1]
        request.outputs = outputs if outputs is not None else {'out': np.array([frame_id])}
        callback(error)

    def complete_in_thread(self, frame_id: int, **kwargs) -> threading.Thread:
        thread = threading.Thread(target=self.complete, args=(frame_id,), kwargs=kwargs)
        thread.start()
        return thread


@pytest.fixture
def manual_runtime():
    return ManualRuntime()


def make_two_person_maps(height: int = 10, width: int = 12):
    """Heatmaps/PAFs for a 2-keypoint, 1-edge skeleton with two people on rows 2 and 7."""
    heatmaps = np.zeros((3, height, width), dtype=np.float32)
    heatmaps[0, 2, 1] = 0.9
    heatmaps[0, 7, 1] = 0.7
    heatmaps[1, 2, 5] = 0.8
    heatmaps[1, 7, 5] = 0.6
    pafs = np.zeros((2, height, width), dtype=np.float32)
    pafs[0] = 1.0
    return heatmaps, pafs


def make_single_limb_maps(height: int = 10, width: int = 12):
    """One person, two keypoints at (2, 5) and (7, 5) joined by a +x PAF."""
    heatmaps = np.zeros((3, height, width), dtype=np.float32)
    heatmaps[0, 5, 2] = 0.9
    heatmaps[1, 5, 7] = 0.8
    pafs = np.zeros((2, height, width), dtype=np.float32)
    pafs[0] = 1.0
    return heatmaps, pafs


@pytest.fixture
def single_limb_maps():
    return make_single_limb_maps()


@pytest.fixture
def two_person_maps():
    return make_two_person_maps()
