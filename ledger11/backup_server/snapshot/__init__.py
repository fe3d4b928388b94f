"""
Snapshot module for the backup server.

Invariants:
    - Snapshots use the SQLite online backup API, never a raw file copy
    - Snapshot files live only for one processing cycle
"""

from .engine import SnapshotEngine, SnapshotHandle, backup_file_name

__all__ = ["SnapshotEngine", "SnapshotHandle", "backup_file_name"]
