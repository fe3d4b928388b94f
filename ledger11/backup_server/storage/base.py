"""
Base protocol for backup storage backends.

Invariants:
    - store() returns only after the bytes are durably written at the target
    - Failures surface as StorageUnavailable, never as partial success
    - Backends that write in place stage bytes under ``<name>.part`` and
      rename onto the final name, so a partial backup never looks complete
    - Providers are immutable after construction and hold no connections
      between calls

How to change safely:
    - Protocol changes require updating all implementations
    - New backends must be registered in create_storage_provider()
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..config import ServiceConfig

PARTIAL_SUFFIX = ".part"


class StoreCancelled(Exception):
    """Raised inside a copy thread once the awaiting store() is cancelled."""


@runtime_checkable
class StorageProvider(Protocol):
    """Protocol for snapshot storage backends.

    Concurrency contract:
        The backup worker issues at most one store() call at a time, so
        implementations need no internal locking.

    Example:
        >>> provider = LocalStorageProvider("/srv/backups")
        >>> with open("/tmp/appdata-20250101120000.db.bak", "rb") as f:
        ...     await provider.store(f, "appdata-20250101120000.db.bak")
    """

    @abstractmethod
    async def store(self, stream: BinaryIO, destination_name: str) -> None:
        """Persist the full contents of ``stream`` as ``destination_name``.

        Args:
            stream: Readable binary stream positioned at the start
            destination_name: File name at the target

        Raises:
            StorageUnavailable: If the target cannot be written
        """
        ...


def create_storage_provider(config: "ServiceConfig") -> StorageProvider:
    """Factory function to create the storage provider from configuration.

    Args:
        config: Service configuration

    Returns:
        StorageProvider for the configured backend

    Raises:
        ConfigurationError: If the backend is not supported
    """
    from ..config import StorageType
    from .local import LocalStorageProvider
    from .s3 import S3StorageProvider
    from .sftp import SftpStorageProvider

    storage_type = config.storage.storage_type
    if storage_type == StorageType.SFTP:
        return SftpStorageProvider(config.storage)
    elif storage_type == StorageType.FILE:
        return LocalStorageProvider(config.storage.remote_path)
    elif storage_type == StorageType.S3:
        return S3StorageProvider(config.s3)
    else:
        raise ConfigurationError(f"Unsupported storage type: {storage_type}")
