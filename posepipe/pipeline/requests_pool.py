"""
Fixed-size pool of reusable inference requests.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from posepipe.errors import PoolExhaustedError

from .runtime import ExecutionRuntime, InferRequest

logger = logging.getLogger(__name__)

POLICY_BLOCK = "block"
POLICY_FAIL = "fail"


@dataclass
class RequestSlot:
    index: int
    request: InferRequest
    busy: bool = False


class RequestSlotPool:
    """Hands out idle request slots and tracks how many are in flight.

    Slot states are guarded by ``condition``, which the owning pipeline shares
    so results, counters and slots live under one lock. Methods ending in
    ``_locked`` expect the caller to hold it already.
    """

    def __init__(self,
                 runtime: ExecutionRuntime,
                 size: int,
                 policy: str = POLICY_BLOCK,
                 condition: Optional[threading.Condition] = None):
        if size <= 0:
            raise ValueError(f"Pool size must be positive, got {size}")
        if policy not in (POLICY_BLOCK, POLICY_FAIL):
            raise ValueError(f"Unknown pool policy '{policy}', expected '{POLICY_BLOCK}' or '{POLICY_FAIL}'")

        self.policy = policy
        self.condition = condition or threading.Condition()
        self._slots: List[RequestSlot] = [RequestSlot(i, runtime.create_request()) for i in range(size)]
        logger.info(f"Created request pool with {size} slots (policy: {policy})")

    @property
    def size(self) -> int:
        return len(self._slots)

    def _find_idle_locked(self) -> Optional[RequestSlot]:
        for slot in self._slots:
            if not slot.busy:
                return slot
        return None

    def acquire(self, timeout: Optional[float] = None) -> Optional[RequestSlot]:
        """Mark an idle slot busy and return it.

        Under the ``fail`` policy a saturated pool raises PoolExhaustedError at
        once. Under ``block`` the call waits, returning ``None`` if ``timeout``
        seconds pass without a slot becoming idle.
        """
        with self.condition:
            slot = self._find_idle_locked()
            if slot is None and self.policy == POLICY_FAIL:
                raise PoolExhaustedError(f"All {self.size} request slots are busy")

            deadline = None if timeout is None else time.monotonic() + timeout
            while slot is None:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self.condition.wait(remaining)
                slot = self._find_idle_locked()

            slot.busy = True
            return slot

    def release(self, slot: RequestSlot) -> None:
        with self.condition:
            self.release_locked(slot)
            self.condition.notify_all()

    def release_locked(self, slot: RequestSlot) -> None:
        if not slot.busy:
            raise ValueError(f"Request slot {slot.index} is already idle")
        slot.busy = False

    def in_use_count(self) -> int:
        with self.condition:
            return self.in_use_count_locked()

    def in_use_count_locked(self) -> int:
        return sum(1 for slot in self._slots if slot.busy)

    def has_idle_slot(self) -> bool:
        with self.condition:
            return self._find_idle_locked() is not None

    def wait_for_total_completion(self, timeout: Optional[float] = None) -> bool:
        """Block until every slot is idle; False if ``timeout`` expires first."""
        with self.condition:
            return self.condition.wait_for(lambda: self.in_use_count_locked() == 0, timeout)
