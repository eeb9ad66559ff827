"""
Base model interface for postprocessing raw inference outputs.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Tuple

from posepipe.pipeline.pipeline_base import RequestResult

Shape = Tuple[Any, ...]


class AIModel(ABC):
    """Abstract base class for models driven by an asynchronous pipeline."""

    def __init__(self, config: Dict):
        """
        Initialize model with configuration.

        Args:
            config: Model configuration dictionary containing thresholds, topology, etc.
        """
        self.config = config
        self.model_name = self.__class__.__name__

    @abstractmethod
    def validate_runtime(self, input_shapes: Dict[str, Shape], output_shapes: Dict[str, Shape]) -> None:
        """
        Check the runtime's tensor metadata against what the model expects.

        Raises:
            ShapeMismatchError: if inputs or outputs do not fit the model.
        """
        pass

    @abstractmethod
    def postprocess(self, result: RequestResult) -> List:
        """
        Turn one completed request into model-specific results.

        Args:
            result: Completed request with named output tensors and the
                metadata passed at submission.

        Returns:
            List of model-specific results (e.g. poses).
        """
        pass

    @property
    def model_tag(self) -> str:
        """Short name used in output messages, e.g. ``openpose``."""
        return self.model_name.lower().replace('model', '')
