"""
Backup worker loop.

The BackupWorker is the single consumer of the BackupQueue:

    CREATED ──run()──▶ IDLE ◀──────────────┐
                        │ request pending    │ queue empty
                        ▼                    │
                     DRAINING ───────────────┘
    (IDLE | DRAINING) ──request_stop()/cancel──▶ STOPPED

Processing one request:
    1. Snapshot the database into a local temp file
    2. Upload the snapshot through the storage provider
    3. Delete the temp file, whatever happened in 1 and 2

Invariants:
    - At most one request is in flight
    - A failed request is logged and dropped, never retried
    - No exception other than cancellation escapes process()
    - The temp file never outlives its processing cycle
    - A request cut short by cancellation counts as abandoned, not failed
    - After STOPPED no request is dequeued again

How to change safely:
    - Keep stop checkpoints in front of every blocking I/O step
    - Retry or persistence would change delivery semantics, add them as
      opt-in behaviour
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from ..errors import BackupError
from ..snapshot import SnapshotEngine, SnapshotHandle
from ..storage import StorageProvider
from .backup_queue import BackupQueue, BackupRequest

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Lifecycle states of the backup worker."""

    CREATED = "created"
    IDLE = "idle"
    DRAINING = "draining"
    STOPPED = "stopped"


def _release_when_done(future: asyncio.Future, handle: SnapshotHandle) -> None:
    """Delete the snapshot once an abandoned capture thread finishes."""

    def _done(fut: asyncio.Future) -> None:
        if not fut.cancelled():
            fut.exception()
        handle.release()

    future.add_done_callback(_done)


class BackupWorker:
    """Drains the backup queue one request at a time.

    Attributes:
        queue: Source of backup requests
        storage: Destination for snapshots
        snapshot_engine: Creates local snapshots
        poll_interval: Seconds to sleep when the queue is empty

    Example:
        >>> worker = BackupWorker(queue, storage, SnapshotEngine())
        >>> task = asyncio.create_task(worker.run())
        >>> worker.request_stop()
        >>> await task
    """

    def __init__(
        self,
        queue: BackupQueue,
        storage: StorageProvider,
        snapshot_engine: SnapshotEngine,
        poll_interval: float = 1.0,
    ) -> None:
        self.queue = queue
        self.storage = storage
        self.snapshot_engine = snapshot_engine
        self.poll_interval = poll_interval

        self._state = WorkerState.CREATED
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        self._processed_count = 0
        self._failed_count = 0
        self._abandoned_count = 0

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def run(self) -> None:
        """Run the consume loop until stop is requested or the task is cancelled."""
        if self._state != WorkerState.CREATED:
            logger.warning("Backup worker already started", extra={"state": self._state.value})
            return

        if self._stop_requested:
            self._state = WorkerState.STOPPED
            return

        self._state = WorkerState.IDLE
        logger.info(
            "Backup worker started",
            extra={"poll_interval": self.poll_interval, "storage": repr(self.storage)},
        )

        try:
            while not self._stop_requested:
                request = self.queue.try_dequeue()
                if request is None:
                    self._state = WorkerState.IDLE
                    await self._wait_for_work()
                    continue

                self._state = WorkerState.DRAINING
                await self.process(request)

        except asyncio.CancelledError:
            logger.info("Backup worker cancelled")
        finally:
            self._state = WorkerState.STOPPED
            logger.info(
                "Backup worker stopped",
                extra={"pending": len(self.queue), **self.counters()},
            )

    def request_stop(self) -> None:
        """Ask the loop to stop at its next checkpoint."""
        self._stop_requested = True
        self._stop_event.set()

    async def _wait_for_work(self) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    def _checkpoint(self, request: BackupRequest, step: str) -> bool:
        if not self._stop_requested:
            return True
        self._abandoned_count += 1
        logger.info(
            f"Stop requested, abandoning backup before {step}",
            extra={"resource_path": request.resource_path},
        )
        return False

    async def process(self, request: BackupRequest) -> bool:
        """Snapshot and upload one database.

        Args:
            request: Request to process

        Returns:
            True if the snapshot was stored, False otherwise
        """
        path = request.resource_path
        logger.info("Backing up database", extra={"resource_path": path})

        handle: SnapshotHandle | None = None
        try:
            if not self._checkpoint(request, "snapshot"):
                return False

            handle = self.snapshot_engine.allocate(path)
            capture = asyncio.get_running_loop().run_in_executor(
                None, self.snapshot_engine.capture, handle
            )
            try:
                await capture
            except asyncio.CancelledError:
                self._abandoned_count += 1
                _release_when_done(capture, handle)
                raise

            if not self._checkpoint(request, "upload"):
                return False

            with handle.open() as stream:
                try:
                    await self.storage.store(stream, handle.destination_name)
                except asyncio.CancelledError:
                    self._abandoned_count += 1
                    logger.warning(
                        "Upload cancelled, backup abandoned",
                        extra={
                            "resource_path": path,
                            "destination_name": handle.destination_name,
                        },
                    )
                    raise

            self._processed_count += 1
            logger.info(
                "Backup stored",
                extra={"resource_path": path, "destination_name": handle.destination_name},
            )
            return True

        except BackupError as e:
            self._failed_count += 1
            logger.error(
                f"Backup of {path} failed: {e}",
                extra={"resource_path": path, "error_type": type(e).__name__},
                exc_info=True,
            )
            return False

        except Exception as e:
            self._failed_count += 1
            logger.error(
                f"Unexpected error during backup of {path}: {e}",
                extra={"resource_path": path, "error_type": type(e).__name__},
                exc_info=True,
            )
            return False

        finally:
            if handle is not None:
                handle.release()

    def counters(self) -> dict[str, int]:
        return {
            "processed_count": self._processed_count,
            "failed_count": self._failed_count,
            "abandoned_count": self._abandoned_count,
        }

    @property
    def stats(self) -> dict[str, Any]:
        """Get worker statistics."""
        return {
            "state": self._state.value,
            "pending": len(self.queue),
            **self.counters(),
        }
