"""
SFTP storage backend.

Each store() call opens its own SSH connection, uploads the whole stream
and disconnects. The upload goes to ``<name>.part`` and is renamed onto
the final name once complete. There is no resume support and no retry at this layer;
the worker drops the request when the upload fails.

Invariants:
    - No connection outlives a store() call
    - Transport and authentication failures raise StorageUnavailable
    - Credentials are never logged
    - A failed or cancelled upload is removed, never left under the final name
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import threading
from typing import BinaryIO

import paramiko

from ..config import RemoteStorageConfig
from ..errors import StorageUnavailable
from .base import PARTIAL_SUFFIX, StoreCancelled

logger = logging.getLogger(__name__)


class SftpStorageProvider:
    """Uploads snapshots to an SFTP server.

    Host keys are checked against ``known_hosts_file`` when it is set and
    unknown hosts are rejected. Without it, unknown host keys are accepted
    and a warning is logged.

    Example:
        >>> provider = SftpStorageProvider(RemoteStorageConfig(
        ...     storage_type=StorageType.SFTP, host="backup.local",
        ...     username="ledger", password="...", remote_path="/backups"))
        >>> await provider.store(stream, "appdata-20250101120000.db.bak")
    """

    def __init__(self, config: RemoteStorageConfig) -> None:
        self.config = config

    def remote_path_for(self, destination_name: str) -> str:
        if not self.config.remote_path:
            return destination_name
        return posixpath.join(self.config.remote_path, destination_name)

    async def store(self, stream: BinaryIO, destination_name: str) -> None:
        """Upload ``stream`` to ``remote_path/destination_name``."""
        remote_path = self.remote_path_for(destination_name)
        logger.debug(
            "Uploading backup over SFTP",
            extra={"host": self.config.host, "remote_path": remote_path},
        )
        abort = threading.Event()
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, self._upload, stream, remote_path, abort
            )
        except asyncio.CancelledError:
            abort.set()
            raise
        logger.info(
            "Uploaded backup over SFTP",
            extra={"host": self.config.host, "remote_path": remote_path},
        )

    def _connect(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        if self.config.known_hosts_file:
            client.load_host_keys(self.config.known_hosts_file)
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.WarningPolicy())

        client.connect(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username or None,
            password=self.config.password or None,
            timeout=self.config.connect_timeout,
            look_for_keys=not self.config.password,
            allow_agent=not self.config.password,
        )
        return client

    def _upload(self, stream: BinaryIO, remote_path: str, abort: threading.Event) -> None:
        partial = remote_path + PARTIAL_SUFFIX

        def _progress(transferred: int, total: int) -> None:
            if abort.is_set():
                raise StoreCancelled(remote_path)

        client = None
        try:
            client = self._connect()
            sftp = client.open_sftp()
            try:
                try:
                    sftp.putfo(stream, partial, callback=_progress)
                    if abort.is_set():
                        raise StoreCancelled(remote_path)
                    sftp.posix_rename(partial, remote_path)
                except BaseException:
                    self._remove_partial(sftp, partial)
                    raise
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise StorageUnavailable(
                f"SFTP upload to {self.config.host}:{self.config.port} failed: {e}"
            ) from e
        finally:
            if client is not None:
                client.close()

    def _remove_partial(self, sftp: paramiko.SFTPClient, partial: str) -> None:
        try:
            sftp.remove(partial)
        except FileNotFoundError:
            pass
        except (paramiko.SSHException, OSError) as e:
            logger.warning(
                f"Could not remove partial upload: {e}",
                extra={"host": self.config.host, "remote_path": partial},
            )

    def __repr__(self) -> str:
        return (
            f"SftpStorageProvider(host={self.config.host!r}, port={self.config.port}, "
            f"remote_path={self.config.remote_path!r})"
        )
