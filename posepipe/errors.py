"""Exception types raised by the pose pipeline and decoder."""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ShapeMismatchError(PipelineError, ValueError):
    """Tensor rank or dimensions do not match the configured topology."""


class EmptyResultError(PipelineError, LookupError):
    """The primary output of a result that carries no outputs was requested."""


class PoolExhaustedError(PipelineError, RuntimeError):
    """No idle request slot is available."""


class AsyncFailureError(PipelineError, RuntimeError):
    """An exception raised inside a completion callback.

    The original exception is kept as ``__cause__`` and the frame that failed
    is available as ``frame_id``.
    """

    def __init__(self, message: str, frame_id: int = None):
        super().__init__(message)
        self.frame_id = frame_id
