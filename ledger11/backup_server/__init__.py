"""
ledger11 backup server - durable SQLite backups to remote storage.

The ledger11 web application keeps every book (space) in its own SQLite
database. Whenever a write transaction commits, the host calls
``notify(path)`` and this package takes care of the rest:

    ┌─────────────┐  notify()  ┌─────────────┐  try_dequeue()  ┌─────────────┐
    │  Host app   │───────────▶│ BackupQueue │────────────────▶│BackupWorker │
    └─────────────┘            └─────────────┘                 └──────┬──────┘
                                                                      │
                                     ┌────────────────────────────────┤
                                     ▼                                ▼
                              ┌──────────────┐               ┌─────────────────┐
                              │SnapshotEngine│──temp file───▶│ StorageProvider │
                              │ (SQLite API) │               │ File / SFTP / S3│
                              └──────────────┘               └─────────────────┘

Invariants:
    - notify() never blocks the caller
    - Requests are processed one at a time, in FIFO order
    - A failure affects only its own request
    - Local snapshot files never outlive their processing cycle

How to change safely:
    - New storage backends implement the StorageProvider protocol
    - Keep the snapshot naming convention stable, remote retention relies on it
"""

from ._version import __version__

__all__ = ["__version__"]
