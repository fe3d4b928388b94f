"""
Storage backends for database snapshots.

Supported targets:
- Local filesystem (also used for mounted shares)
- SFTP
- S3-compatible object storage
- In-memory (for testing)

Invariants:
    - store() returns only after the snapshot is durably written
    - Exactly one backend is active per process, chosen at startup
"""

from .base import PARTIAL_SUFFIX, StorageProvider, create_storage_provider
from .local import LocalStorageProvider
from .memory import InMemoryStorageProvider, StoredObject
from .s3 import S3StorageProvider
from .sftp import SftpStorageProvider

__all__ = [
    # Protocol
    "StorageProvider",
    # Factory
    "create_storage_provider",
    "PARTIAL_SUFFIX",
    # Implementations
    "LocalStorageProvider",
    "SftpStorageProvider",
    "S3StorageProvider",
    "InMemoryStorageProvider",
    "StoredObject",
]
