"""
Execution runtimes the pipeline dispatches inference requests to.

A runtime hands out reusable requests. A request runs asynchronously given its
input tensors and calls the completion callback from a runtime-owned thread,
passing ``None`` on success or the exception that stopped it.
"""
import logging
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import onnxruntime as ort

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Optional[BaseException]], None]
Shape = Tuple[Any, ...]


class InferRequest(ABC):
    """One reusable unit of asynchronous execution."""

    @abstractmethod
    def start_async(self, inputs: Dict[str, np.ndarray], callback: CompletionCallback) -> None:
        pass

    @abstractmethod
    def get_output(self, name: str) -> np.ndarray:
        pass


class ExecutionRuntime(ABC):
    """Factory of requests plus the shape metadata of the loaded model."""

    @abstractmethod
    def create_request(self) -> InferRequest:
        pass

    @abstractmethod
    def get_input_shapes(self) -> Dict[str, Shape]:
        pass

    @abstractmethod
    def get_output_shapes(self) -> Dict[str, Shape]:
        pass

    @property
    def output_names(self) -> List[str]:
        return list(self.get_output_shapes().keys())

    def close(self) -> None:
        """Release runtime resources."""
        pass


class _OnnxRequest(InferRequest):

    def __init__(self, session: ort.InferenceSession, output_names: List[str]):
        self._session = session
        self._output_names = output_names
        self._outputs: Dict[str, np.ndarray] = {}

    def start_async(self, inputs: Dict[str, np.ndarray], callback: CompletionCallback) -> None:
        self._outputs = {}
        self._session.run_async(self._output_names, inputs, self._on_done, callback)

    def _on_done(self, results, callback: CompletionCallback, err: str) -> None:
        if err:
            callback(RuntimeError(f"onnxruntime inference failed: {err}"))
            return
        self._outputs = {
            name: value.numpy() if hasattr(value, 'numpy') else np.asarray(value)
            for name, value in zip(self._output_names, results)
        }
        callback(None)

    def get_output(self, name: str) -> np.ndarray:
        if name not in self._outputs:
            raise KeyError(f"No output named '{name}' is available")
        return self._outputs[name]


class OnnxRuntimeBackend(ExecutionRuntime):
    """Runs an ONNX model with ``InferenceSession.run_async``.

    Completion callbacks fire on onnxruntime's own thread pool. ``run_async``
    needs an explicit intra-op pool, so a non-positive ``intra_op_num_threads``
    resolves to ``max(2, cpu_count)``.
    """

    def __init__(self, onnx_model: str, device: str = 'cpu', intra_op_num_threads: int = 0):
        if not os.path.exists(onnx_model):
            raise FileNotFoundError(f"ONNX model not found: {onnx_model}")

        if device.startswith("cuda"):
            gpu_id = int(device.split(":")[1]) if ":" in device else 0
            providers = [("CUDAExecutionProvider", {"device_id": gpu_id})]
        elif device == "cpu":
            providers = ["CPUExecutionProvider"]
        else:
            raise ValueError(f"Unsupported device: {device}")

        options = ort.SessionOptions()
        if intra_op_num_threads <= 0:
            intra_op_num_threads = max(2, os.cpu_count() or 2)
        options.intra_op_num_threads = intra_op_num_threads
        self.session = ort.InferenceSession(onnx_model, sess_options=options, providers=providers)
        self.device = device
        self.intra_op_num_threads = intra_op_num_threads
        logger.info(f"Loaded {onnx_model} with onnxruntime on {device} "
                    f"({intra_op_num_threads} intra-op threads)")

    def create_request(self) -> InferRequest:
        return _OnnxRequest(self.session, self.output_names)

    def get_input_shapes(self) -> Dict[str, Shape]:
        return {arg.name: tuple(arg.shape) for arg in self.session.get_inputs()}

    def get_output_shapes(self) -> Dict[str, Shape]:
        return {arg.name: tuple(arg.shape) for arg in self.session.get_outputs()}


class _ThreadPoolRequest(InferRequest):

    def __init__(self, backend: "ThreadPoolBackend"):
        self._backend = backend
        self._outputs: Dict[str, np.ndarray] = {}

    def start_async(self, inputs: Dict[str, np.ndarray], callback: CompletionCallback) -> None:
        self._outputs = {}
        self._backend.executor.submit(self._run, inputs, callback)

    def _run(self, inputs: Dict[str, np.ndarray], callback: CompletionCallback) -> None:
        try:
            outputs = self._backend.infer_fn(inputs)
        except Exception as e:
            logger.error(f"Inference function failed: {e}")
            callback(e)
            return
        self._outputs = dict(outputs)
        callback(None)

    def get_output(self, name: str) -> np.ndarray:
        if name not in self._outputs:
            raise KeyError(f"No output named '{name}' is available")
        return self._outputs[name]


class ThreadPoolBackend(ExecutionRuntime):
    """Runs a Python callable ``inputs -> {name: tensor}`` on a thread pool."""

    def __init__(self,
                 infer_fn: Callable[[Dict[str, np.ndarray]], Dict[str, np.ndarray]],
                 input_shapes: Dict[str, Shape],
                 output_shapes: Dict[str, Shape],
                 max_workers: int = 2):
        self.infer_fn = infer_fn
        self._input_shapes = dict(input_shapes)
        self._output_shapes = dict(output_shapes)
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="infer")

    def create_request(self) -> InferRequest:
        return _ThreadPoolRequest(self)

    def get_input_shapes(self) -> Dict[str, Shape]:
        return dict(self._input_shapes)

    def get_output_shapes(self) -> Dict[str, Shape]:
        return dict(self._output_shapes)

    def close(self) -> None:
        self.executor.shutdown(wait=True)
