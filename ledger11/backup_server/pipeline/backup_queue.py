"""
Pending backup requests.

Invariants:
    - enqueue() never blocks and never fails (the queue is unbounded)
    - Requests are dequeued in exactly the order they were enqueued
    - Safe for any number of producer threads and one consumer
    - Duplicate paths are kept as separate requests
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BackupRequest:
    """A database that needs to be backed up.

    Attributes:
        resource_path: Path of the database file
        enqueued_at: Wall-clock time the request was queued
    """

    resource_path: str
    enqueued_at: float = field(default_factory=time.time, compare=False)

    def __str__(self) -> str:
        return f"BackupRequest({self.resource_path})"


class BackupQueue:
    """Unbounded FIFO of backup requests.

    The lock only guards the deque for the duration of a single append or
    pop, so producers never wait on the consumer's I/O.
    """

    def __init__(self) -> None:
        self._items: deque[BackupRequest] = deque()
        self._lock = threading.Lock()

    def enqueue(self, resource_path: str) -> BackupRequest:
        request = BackupRequest(str(resource_path))
        with self._lock:
            self._items.append(request)
        return request

    def try_dequeue(self) -> BackupRequest | None:
        """Pop the oldest request, or return None when nothing is pending."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def pending(self) -> list[str]:
        """Paths of pending requests, oldest first."""
        with self._lock:
            return [request.resource_path for request in self._items]

    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
