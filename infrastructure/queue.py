"""
In-Memory Execution Queue.

Priority queue of execution ids shared by the threads of one process.
Highest priority first, FIFO within a priority (heap ordered by
(-priority, sequence)). Priorities are clamped to [0, highest_priority].

Exports:
    InMemoryExecutionQueue: IExecutionQueue implementation
"""

import heapq
import itertools
import threading
from typing import List, Optional, Tuple

from config.defaults import QueueDefaults
from infrastructure.interface_repository import IExecutionQueue, QueueMessage
from util_logger import LoggerFactory, ComponentType


def clamp_priority(priority: int, highest_priority: int) -> int:
    return max(0, min(int(priority), highest_priority))


class InMemoryExecutionQueue(IExecutionQueue):
    """
    Thread-safe priority queue.

    Usage:
        queue = InMemoryExecutionQueue(highest_priority=10)
        queue.push(execution.id, 5)
        message = queue.pull(timeout=1.0)
    """

    def __init__(self, highest_priority: int = QueueDefaults.HIGHEST_PRIORITY):
        self.logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "InMemoryExecutionQueue")
        self.highest_priority = highest_priority
        self._heap: List[Tuple[int, int, str]] = []
        self._sequence = itertools.count()
        self._condition = threading.Condition()

    def push(self, execution_id: str, priority: int) -> None:
        priority = clamp_priority(priority, self.highest_priority)
        with self._condition:
            heapq.heappush(self._heap, (-priority, next(self._sequence), execution_id))
            self._condition.notify()
        self.logger.debug(f"📤 Queued execution {execution_id} priority={priority}")

    def pull(self, timeout: float) -> Optional[QueueMessage]:
        with self._condition:
            if not self._heap:
                self._condition.wait(timeout)
            if not self._heap:
                return None
            negative_priority, _, execution_id = heapq.heappop(self._heap)
        return QueueMessage(execution_id=execution_id, priority=-negative_priority)

    def __len__(self) -> int:
        with self._condition:
            return len(self._heap)


__all__ = ["InMemoryExecutionQueue", "clamp_priority"]
