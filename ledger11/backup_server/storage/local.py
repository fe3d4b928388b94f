"""
Local filesystem storage backend.

Writes snapshots below a configured root directory, e.g. a mounted network
share or a directory picked up by another backup tool.

Invariants:
    - Intermediate directories are created on demand
    - Bytes go to ``<name>.part`` and are fsynced, then renamed onto the
      final name; a backup is never visible under its final name half-written
    - A failed or cancelled store leaves no ``.part`` file behind
    - An existing file with the same name is overwritten
    - An empty root makes store() a no-op
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import BinaryIO

from ..errors import StorageUnavailable
from .base import PARTIAL_SUFFIX, StoreCancelled

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class LocalStorageProvider:
    """Stores snapshots on the local filesystem.

    Attributes:
        root: Destination directory. Empty means "not configured": store()
            skips silently, matching the behaviour ledger11 deployments rely
            on when no backup path is set.
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = str(root)

    @property
    def is_configured(self) -> bool:
        return bool(self.root.strip())

    async def store(self, stream: BinaryIO, destination_name: str) -> None:
        """Copy ``stream`` to ``root/destination_name``."""
        if not self.is_configured:
            logger.debug(
                "No backup directory configured, skipping store",
                extra={"destination_name": destination_name},
            )
            return

        destination = Path(self.root) / destination_name
        abort = threading.Event()
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, self._write, stream, destination, abort
            )
        except asyncio.CancelledError:
            # The copy thread cannot be interrupted; it checks this between chunks.
            abort.set()
            raise
        logger.debug("Stored backup", extra={"destination": str(destination)})

    def _write(self, stream: BinaryIO, destination: Path, abort: threading.Event) -> None:
        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
        created = False
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(partial, "wb") as f:
                created = True
                while True:
                    if abort.is_set():
                        raise StoreCancelled(str(destination))
                    chunk = stream.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                f.flush()
                os.fsync(f.fileno())
            if abort.is_set():
                raise StoreCancelled(str(destination))
            os.replace(partial, destination)
        except BaseException as e:
            if created:
                partial.unlink(missing_ok=True)
            if isinstance(e, OSError):
                raise StorageUnavailable(f"Cannot write {destination}: {e}") from e
            raise

    def __repr__(self) -> str:
        return f"LocalStorageProvider(root={self.root!r})"
