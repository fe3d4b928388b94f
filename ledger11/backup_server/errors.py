"""
Error types for the backup pipeline.

Invariants:
    - ConfigurationError is fatal and only raised while building the service
    - ResourceUnavailable and StorageUnavailable never escape the worker loop
    - Messages never include credentials
"""

from __future__ import annotations


class BackupError(Exception):
    """Base exception for backup pipeline operations."""
    pass


class ResourceUnavailable(BackupError):
    """The source database is missing, locked or unreadable."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot snapshot {path}: {reason}")
        self.path = path
        self.reason = reason


class StorageUnavailable(BackupError):
    """The snapshot destination (temp dir or remote target) cannot be written."""
    pass


class ConfigurationError(BackupError, ValueError):
    """Invalid or unsupported backup configuration."""
    pass
