"""
Change detection for standalone deployments.

Inside the ledger11 web app the data layer calls notify() after each
committed write. When the backup server runs on its own, DatabaseWatcher
stands in for that hook by polling the database files.

A database counts as changed when the (mtime_ns, size) signature of the
main file or of its ``-wal`` sidecar differs from the last poll. Writes in
WAL mode only touch the sidecar until a checkpoint runs.

Invariants:
    - The first poll establishes the baseline and does not notify
    - One notification per database per poll at most
    - Missing files are ignored until they appear
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

Signature = Tuple[Optional[Tuple[int, int]], Optional[Tuple[int, int]]]


def _stat_signature(path: Path) -> Optional[Tuple[int, int]]:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    return (st.st_mtime_ns, st.st_size)


def file_signature(path: str | Path) -> Signature:
    """Signature of a database and its WAL sidecar."""
    db_path = Path(path)
    wal_path = db_path.with_name(db_path.name + "-wal")
    return (_stat_signature(db_path), _stat_signature(wal_path))


class DatabaseWatcher:
    """Polls database files and calls ``notify`` when they change.

    Attributes:
        paths: Database files to watch
        notify: Callback receiving the changed path
        interval: Seconds between polls
    """

    def __init__(
        self,
        paths: Iterable[str],
        notify: Callable[[str], object],
        interval: float = 5.0,
    ) -> None:
        self.paths = [str(p) for p in paths]
        self.notify = notify
        self.interval = interval
        self._signatures: dict[str, Signature] = {}
        self._running = False

    def poll(self) -> list[str]:
        """Check every path once and notify the changed ones.

        Returns:
            Paths that were notified
        """
        changed = []
        for path in self.paths:
            signature = file_signature(path)
            if signature[0] is None:
                self._signatures.pop(path, None)
                continue

            previous = self._signatures.get(path)
            self._signatures[path] = signature
            if previous is not None and previous != signature:
                changed.append(path)

        for path in changed:
            logger.debug("Database changed", extra={"resource_path": path})
            self.notify(path)
        return changed

    async def start(self) -> None:
        """Run the polling loop until stopped."""
        if self._running:
            logger.warning("Database watcher already running")
            return

        self._running = True
        logger.info(
            "Starting database watcher",
            extra={"paths": self.paths, "interval": self.interval},
        )

        try:
            while self._running:
                self.poll()
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("Database watcher cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the polling loop."""
        self._running = False
        logger.info("Stopping database watcher")
