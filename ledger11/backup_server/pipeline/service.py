"""
Hosted database backup service.

This is the surface the host application talks to: notify() from any
request handler thread, start() and stop() from the process lifecycle.

Invariants:
    - notify() is fire-and-forget and never blocks on backup I/O
    - start() returns as soon as the worker task is scheduled
    - stop() never raises, and no store() call happens after it returns
    - Requests queued after stop() are kept but never drained

How to change safely:
    - Keep the queue injectable so hosts and tests control its lifetime
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from ..snapshot import SnapshotEngine
from ..storage import StorageProvider, create_storage_provider
from .backup_queue import BackupQueue, BackupRequest
from .worker import BackupWorker, WorkerState

if TYPE_CHECKING:
    from ..config import ServiceConfig

logger = logging.getLogger(__name__)


class DatabaseBackupService:
    """Queues database change notifications and backs them up in the background.

    Attributes:
        storage: Destination for snapshots
        queue: Pending requests (shared with the worker)
        snapshot_engine: Creates local snapshots
        worker: Background consumer
        stop_timeout: Default grace period for stop()

    Example:
        >>> service = DatabaseBackupService(LocalStorageProvider("./backups"))
        >>> await service.start()
        >>> service.notify("appdata.db")
        >>> await service.stop()
    """

    def __init__(
        self,
        storage: StorageProvider,
        queue: BackupQueue | None = None,
        snapshot_engine: SnapshotEngine | None = None,
        poll_interval: float = 1.0,
        stop_timeout: float = 30.0,
    ) -> None:
        self.storage = storage
        self.queue = queue if queue is not None else BackupQueue()
        self.snapshot_engine = snapshot_engine if snapshot_engine is not None else SnapshotEngine()
        self.stop_timeout = stop_timeout
        self.worker = BackupWorker(
            queue=self.queue,
            storage=storage,
            snapshot_engine=self.snapshot_engine,
            poll_interval=poll_interval,
        )
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> WorkerState:
        return self.worker.state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def notify(self, resource_path: str) -> BackupRequest:
        """Queue a backup of ``resource_path``.

        Safe to call from any thread. Returns immediately.
        """
        request = self.queue.enqueue(resource_path)
        if self.worker.stop_requested or self.state == WorkerState.STOPPED:
            logger.warning(
                "Backup service stopped, request will not be processed",
                extra={"resource_path": request.resource_path},
            )
        else:
            logger.info("Queuing file for backup", extra={"resource_path": request.resource_path})
        return request

    async def start(self) -> None:
        """Start consuming the queue in a background task."""
        if self.is_running:
            logger.warning("Database backup service already running")
            return

        if self.state != WorkerState.CREATED:
            logger.warning("Database backup service was stopped and cannot be restarted")
            return

        logger.info("Database backup service is starting")
        self._task = asyncio.create_task(self.worker.run(), name="database-backup-worker")

    async def stop(self, timeout: float | None = None) -> None:
        """Stop the service gracefully.

        The in-flight backup gets ``timeout`` seconds (default
        ``stop_timeout``) to finish, after which it is cancelled.
        """
        logger.info("Database backup service is stopping")
        self.worker.request_stop()

        task = self._task
        if task is None:
            return

        grace = self.stop_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(
                "In-flight backup did not finish in time, cancelling",
                extra={"timeout": grace},
            )
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        except Exception as e:
            logger.error(f"Backup worker failed: {e}", exc_info=True)

    async def wait_idle(self, timeout: float | None = None, interval: float = 0.05) -> bool:
        """Wait until the queue is empty and the worker is idle.

        Returns:
            True when idle, False if the timeout expired or the worker
            stopped with requests still pending.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            state = self.state
            if self.queue.is_empty() and state in (WorkerState.IDLE, WorkerState.STOPPED):
                return True
            if state == WorkerState.STOPPED:
                return False
            if deadline is not None and time.monotonic() >= deadline:
                return False
            await asyncio.sleep(interval)

    @property
    def stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {"running": self.is_running, **self.worker.stats}


def create_backup_service(
    config: "ServiceConfig",
    queue: BackupQueue | None = None,
) -> DatabaseBackupService:
    """Build a DatabaseBackupService from configuration.

    Args:
        config: Service configuration
        queue: Optional queue shared with producers created elsewhere

    Raises:
        ConfigurationError: If the storage backend is unsupported or
            misconfigured
    """
    config.validate()
    storage = create_storage_provider(config)
    snapshot_engine = SnapshotEngine(
        temp_dir=config.pipeline.temp_dir,
        busy_timeout=config.pipeline.busy_timeout_seconds,
    )
    return DatabaseBackupService(
        storage=storage,
        queue=queue,
        snapshot_engine=snapshot_engine,
        poll_interval=config.pipeline.poll_interval_seconds,
        stop_timeout=config.pipeline.stop_timeout_seconds,
    )
