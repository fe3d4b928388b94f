"""
Backup pipeline: queue, worker and the hosted service around them.

Control flow:
    notify(path) -> BackupQueue -> BackupWorker -> SnapshotEngine
                 -> StorageProvider.store() -> temp file deleted

Invariants:
    - One consumer, any number of producers
    - FIFO processing, no merging of duplicate requests
    - Failures are isolated to their own request
"""

from .backup_queue import BackupQueue, BackupRequest
from .service import DatabaseBackupService, create_backup_service
from .worker import BackupWorker, WorkerState

__all__ = [
    "BackupQueue",
    "BackupRequest",
    "BackupWorker",
    "WorkerState",
    "DatabaseBackupService",
    "create_backup_service",
]
