from .queue_interface import END_OF_STREAM, QueueInput, QueueOutput

__all__ = [
    'END_OF_STREAM',
    'QueueInput',
    'QueueOutput',
]
