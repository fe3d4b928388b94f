"""
Point-in-time SQLite snapshots.

A snapshot is a local copy of a live database, taken with SQLite's online
backup API so that concurrent writers never produce a torn copy.

Snapshot naming:
    <basename without extension>-<UTC yyyyMMddHHmmss>.db.bak

e.g. ``/data/appdata.db`` backed up at 2025-06-04 12:16:37 UTC becomes
``appdata-20250604121637.db.bak``. Two snapshots of the same database taken
within the same second get the same name; remote targets overwrite the
earlier one.

Invariants:
    - The source database is never written to
    - Locks on the source are held only while the backup call runs
    - A failed capture leaves no file behind
    - SnapshotHandle.release() is idempotent

How to change safely:
    - The naming convention is relied on by remote retention scripts,
      don't change the timestamp precision
"""

from __future__ import annotations

import logging
import sqlite3
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable

from ..errors import ResourceUnavailable, StorageUnavailable

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".db.bak"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

# SQLite result codes that point at the destination rather than the source.
_DESTINATION_ERRORS = frozenset({"SQLITE_FULL", "SQLITE_READONLY", "SQLITE_CANTOPEN"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backup_file_name(source_path: str | Path, now: datetime) -> str:
    """Derive the snapshot file name for ``source_path`` taken at ``now``.

    Naive datetimes are interpreted as UTC.

    >>> backup_file_name("/data/appdata.db", datetime(2025, 6, 4, 12, 16, 37))
    'appdata-20250604121637.db.bak'
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    stem = Path(source_path).stem
    return f"{stem}-{now.strftime(TIMESTAMP_FORMAT)}{SNAPSHOT_SUFFIX}"


@dataclass
class SnapshotHandle:
    """A local snapshot file owned by one processing cycle.

    Attributes:
        source_path: Database the snapshot was taken from
        path: Local snapshot file
        destination_name: Name passed to the storage provider
        taken_at: UTC time the snapshot name was derived from
    """

    source_path: str
    path: Path
    destination_name: str
    taken_at: datetime

    def exists(self) -> bool:
        return self.path.exists()

    def open(self) -> BinaryIO:
        """Open the snapshot for reading."""
        return open(self.path, "rb")

    def release(self) -> None:
        """Delete the local snapshot file if it exists."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.debug("Deleted local snapshot", extra={"path": str(self.path)})

    def __enter__(self) -> SnapshotHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class SnapshotEngine:
    """Creates consistent local copies of SQLite databases.

    Attributes:
        temp_dir: Directory receiving snapshot files
        busy_timeout: Seconds to wait on a locked source before failing
        clock: Returns the current UTC time, injectable for tests

    Example:
        >>> engine = SnapshotEngine()
        >>> with engine.snapshot("/data/appdata.db") as handle:
        ...     upload(handle.open(), handle.destination_name)
    """

    def __init__(
        self,
        temp_dir: str | Path | None = None,
        busy_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.busy_timeout = busy_timeout
        self.clock = clock

    def allocate(self, source_path: str) -> SnapshotHandle:
        """Reserve a snapshot name and local path without touching disk."""
        taken_at = self.clock()
        name = backup_file_name(source_path, taken_at)
        return SnapshotHandle(
            source_path=str(source_path),
            path=self.temp_dir / name,
            destination_name=name,
            taken_at=taken_at,
        )

    def capture(self, handle: SnapshotHandle) -> None:
        """Copy the source database into ``handle.path``.

        Blocking; the worker runs this in an executor thread.

        Raises:
            ResourceUnavailable: Source missing, locked or not a database
            StorageUnavailable: Snapshot file cannot be created or written
        """
        source = Path(handle.source_path)
        if not source.is_file():
            raise ResourceUnavailable(handle.source_path, "file not found")

        # A leftover from a crashed run would otherwise be backed up into.
        handle.release()

        try:
            dest_conn = sqlite3.connect(str(handle.path))
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot create snapshot file {handle.path}: {e}") from e

        source_conn = None
        try:
            try:
                source_conn = sqlite3.connect(str(source), timeout=self.busy_timeout)
            except sqlite3.Error as e:
                raise ResourceUnavailable(handle.source_path, str(e)) from e

            try:
                source_conn.backup(dest_conn)
            except sqlite3.Error as e:
                if getattr(e, "sqlite_errorname", None) in _DESTINATION_ERRORS:
                    raise StorageUnavailable(
                        f"Cannot write snapshot file {handle.path}: {e}"
                    ) from e
                raise ResourceUnavailable(handle.source_path, str(e)) from e
        except BaseException:
            dest_conn.close()
            dest_conn = None
            handle.release()
            raise
        finally:
            if source_conn is not None:
                source_conn.close()
            if dest_conn is not None:
                dest_conn.close()

        logger.debug(
            "Created local snapshot",
            extra={"source_path": handle.source_path, "path": str(handle.path)},
        )

    def snapshot(self, source_path: str) -> SnapshotHandle:
        """Take a snapshot of ``source_path`` and return its handle.

        The caller owns the returned handle and must release() it.
        """
        handle = self.allocate(source_path)
        self.capture(handle)
        return handle
