import asyncio
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

END_OF_STREAM = None


class QueueInput:
    """In-process input interface backed by an asyncio.Queue.

    Producers call ``put``; ``close`` enqueues the end-of-stream marker, after
    which ``read_data`` returns ``None``.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.topic = config.get('topic', 'queue_input')
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=int(config.get('queue_max_len', 100)))
        self.is_running = False

    async def initialize(self) -> bool:
        self.is_running = True
        logger.info(f"Queue input '{self.topic}' initialized")
        return True

    async def put(self, message: Dict[str, Any]) -> None:
        await self.queue.put(message)

    async def close(self) -> None:
        await self.queue.put(END_OF_STREAM)

    async def read_data(self) -> Optional[Dict[str, Any]]:
        message = await self.queue.get()
        if message is END_OF_STREAM:
            self.is_running = False
        return message

    async def cleanup(self) -> None:
        self.is_running = False
        logger.info(f"Queue input '{self.topic}' cleaned up")


class QueueOutput:
    """In-process output interface that collects written messages."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.topic = config.get('topic', 'queue_output')
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=int(config.get('queue_max_len', 0)))
        self.is_running = False

    async def initialize(self) -> bool:
        self.is_running = True
        return True

    async def write_data(self, results: Dict[str, Any]) -> bool:
        await self.queue.put(results)
        return True

    def drain(self) -> List[Dict[str, Any]]:
        """Return and remove every message written so far."""
        messages = []
        while not self.queue.empty():
            messages.append(self.queue.get_nowait())
        return messages

    async def cleanup(self) -> None:
        self.is_running = False
