"""
In-memory storage backend for testing.

Invariants:
    - All data is lost on process exit
    - Stored objects are kept in call order
    - This is test-only code, changes don't affect production
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import BinaryIO, Callable

from ..errors import StorageUnavailable


@dataclass(frozen=True)
class StoredObject:
    """One completed store() call."""
    destination_name: str
    data: bytes


class InMemoryStorageProvider:
    """Records every stored snapshot in memory.

    Attributes:
        objects: Stored objects in the order store() completed
        fail_when: Optional predicate on the destination name; when it
            returns True, store() raises StorageUnavailable instead
        delay: Seconds to sleep inside store(), to simulate slow uploads

    Example:
        >>> storage = InMemoryStorageProvider()
        >>> await storage.store(io.BytesIO(b"data"), "a-20250101000000.db.bak")
        >>> storage.names
        ['a-20250101000000.db.bak']
    """

    def __init__(
        self,
        fail_when: Callable[[str], bool] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.objects: list[StoredObject] = []
        self.fail_when = fail_when
        self.delay = delay
        self.calls = 0

    @property
    def names(self) -> list[str]:
        return [obj.destination_name for obj in self.objects]

    async def store(self, stream: BinaryIO, destination_name: str) -> None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_when is not None and self.fail_when(destination_name):
            raise StorageUnavailable(f"Simulated failure storing {destination_name}")
        self.objects.append(StoredObject(destination_name, stream.read()))

    def clear(self) -> None:
        self.objects.clear()
        self.calls = 0
