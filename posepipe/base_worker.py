import asyncio
import functools
import logging
from abc import abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

import numpy as np

from posepipe.models import PerformanceSnapshot
from posepipe.pipeline.async_pipeline import AsyncPipeline, PoseResult


class BaseWorker:
    """Streams frames from an input interface through an AsyncPipeline.

    Frames are submitted as they arrive; decoded results are written to the
    output interface in frame order as soon as they are ready. ``run``
    returns once the input reports end of stream (``None``) and every
    in-flight frame has been flushed.
    """

    def __init__(
        self,
        worker_id: int,
        device: str,
        model_config: Dict,
        input_interface,
        output_interface,
    ):
        self.worker_id = worker_id
        self.input_interface = input_interface
        self.output_interface = output_interface
        self.model_config = model_config
        self.device = device
        self.task_id: Optional[str] = model_config.get("task_id") if isinstance(model_config, dict) else None
        self.pipeline: Optional[AsyncPipeline] = None
        self._model_init()
        self._executor = ThreadPoolExecutor(max_workers=1)

    @abstractmethod
    def _model_init(self):
        """Create ``self.pipeline``."""
        pass

    @abstractmethod
    def _prepare_inputs(self, inputs: Dict[str, Any]) -> Tuple[Dict[str, np.ndarray], Any]:
        """Split an input message into runtime tensors and submission metadata."""
        pass

    def _format_results(self, result: PoseResult) -> Any:
        """Format the results for output."""
        return result

    async def run(self) -> int:
        """Run the worker, reading from input and writing to output."""
        loop = asyncio.get_running_loop()
        written = 0
        try:
            while True:
                inputs = await self.input_interface.read_data()
                if inputs is None:
                    break

                tensors, meta = self._prepare_inputs(inputs)
                frame_id = await loop.run_in_executor(
                    self._executor,
                    functools.partial(self.pipeline.submit_data, tensors, meta),
                )
                logging.debug(f"Worker {self.worker_id} submitted frame {frame_id}")
                written += await self._flush_ready_results()

            await loop.run_in_executor(self._executor, self.pipeline.wait_for_total_completion)
            written += await self._flush_ready_results()
        except Exception as e:
            logging.error(f"Worker {self.worker_id} on {self.device} error: {e}")
            raise

        perf = self.performance_snapshot()
        logging.info(f"Worker {self.worker_id} on {self.device} finished: {perf.frames_count} frames, "
                     f"{perf.average_latency_ms:.1f} ms average latency, {perf.fps:.1f} FPS")
        return written

    def performance_snapshot(self) -> PerformanceSnapshot:
        perf = self.pipeline.get_performance_info()
        return PerformanceSnapshot(
            frames_count=perf.frames_count,
            average_latency_ms=perf.average_latency * 1000,
            fps=perf.fps,
            num_requests_in_use=perf.num_requests_in_use,
        )

    async def _flush_ready_results(self) -> int:
        loop = asyncio.get_running_loop()
        written = 0
        while True:
            result = await loop.run_in_executor(self._executor, self.pipeline.get_pose_result)
            if result is None:
                return written
            output = self._format_results(result)
            if isinstance(output, dict) and self.task_id is not None:
                output.setdefault("task_id", self.task_id)
            await self.output_interface.write_data(output)
            written += 1

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self.pipeline is not None:
            self.pipeline.runtime.close()

    async def cleanup(self) -> None:
        """Release the io interfaces, then the executor and runtime."""
        results = await asyncio.gather(
            self.input_interface.cleanup(),
            self.output_interface.cleanup(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logging.error(f"Worker {self.worker_id} interface cleanup error: {result}")
        self.close()
