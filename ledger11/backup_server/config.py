"""
Configuration management for the ledger11 backup server.

All configuration is done via environment variables. Hosts that embed the
pipeline may instead build RemoteStorageConfig from their own settings
mapping with RemoteStorageConfig.from_dict().

Invariants:
    - Exactly one storage backend is selected at startup
    - An unknown backend is a ConfigurationError, never a runtime failure
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - New backends need a StorageType member and a factory branch in
      storage.base.create_storage_provider
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class StorageType(Enum):
    """Supported backup storage backends."""

    SFTP = "sftp"
    FILE = "file"
    S3 = "s3"

    @classmethod
    def parse(cls, value: str | StorageType) -> StorageType:
        """Parse a backend name case-insensitively ("Sftp", "FILE", ...)."""
        if isinstance(value, StorageType):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise ConfigurationError(
                f"Invalid storage type '{value}'. Must be one of: {choices}"
            ) from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'") from None


@dataclass(frozen=True)
class RemoteStorageConfig:
    """Backup destination configuration.

    Attributes:
        storage_type: Which backend receives the snapshots
        host: SFTP host name
        port: SFTP port
        username: SFTP user
        password: SFTP password
        remote_path: Destination directory (remote for SFTP, local for File)
        known_hosts_file: Optional known_hosts file for SFTP host key checks
        connect_timeout: SFTP connection timeout in seconds
    """

    storage_type: StorageType = StorageType.FILE
    host: str = ""
    port: int = 22
    username: str = ""
    password: str = field(default="", repr=False)
    remote_path: str = ""
    known_hosts_file: str | None = None
    connect_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> RemoteStorageConfig:
        """Load configuration from environment variables."""
        return cls(
            storage_type=StorageType.parse(os.getenv("BACKUP_STORAGE_TYPE", "file")),
            host=os.getenv("BACKUP_HOST", ""),
            port=_env_int("BACKUP_PORT", 22),
            username=os.getenv("BACKUP_USERNAME", ""),
            password=os.getenv("BACKUP_PASSWORD", ""),
            remote_path=os.getenv("BACKUP_REMOTE_PATH", ""),
            known_hosts_file=os.getenv("BACKUP_KNOWN_HOSTS") or None,
            connect_timeout=_env_float("BACKUP_CONNECT_TIMEOUT", 30.0),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RemoteStorageConfig:
        """Create from the host application's settings section.

        Accepts the camelCase keys used by the ledger11 settings file
        (``storageType``, ``host``, ``port``, ``username``, ``password``,
        ``remotePath``) as well as the snake_case attribute names.
        """

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        port_raw = pick("port", default=22)
        try:
            port = int(port_raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"port must be an integer, got '{port_raw}'") from None

        return cls(
            storage_type=StorageType.parse(pick("storageType", "storage_type", default="file")),
            host=str(pick("host", default="")),
            port=port,
            username=str(pick("username", default="")),
            password=str(pick("password", default="")),
            remote_path=str(pick("remotePath", "remote_path", default="")),
            known_hosts_file=pick("knownHostsFile", "known_hosts_file"),
            connect_timeout=float(pick("connectTimeout", "connect_timeout", default=30.0)),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for the S3 storage backend.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        prefix: Key prefix for uploaded snapshots
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    prefix: str = "backups"
    access_key_id: str | None = None
    secret_access_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", ""),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT") or None,
            prefix=os.getenv("S3_BACKUP_PREFIX", "backups"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Queue and worker configuration.

    Attributes:
        poll_interval_seconds: Idle sleep between queue checks
        temp_dir: Directory for local snapshot files
        stop_timeout_seconds: Grace period for the in-flight item on stop
        busy_timeout_seconds: SQLite busy timeout for the source connection
    """

    poll_interval_seconds: float = 1.0
    temp_dir: str = field(default_factory=tempfile.gettempdir)
    stop_timeout_seconds: float = 30.0
    busy_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load configuration from environment variables."""
        return cls(
            poll_interval_seconds=_env_float("BACKUP_POLL_INTERVAL_SECONDS", 1.0),
            temp_dir=os.getenv("BACKUP_TEMP_DIR") or tempfile.gettempdir(),
            stop_timeout_seconds=_env_float("BACKUP_STOP_TIMEOUT_SECONDS", 30.0),
            busy_timeout_seconds=_env_float("BACKUP_BUSY_TIMEOUT_SECONDS", 5.0),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
        )


@dataclass
class ServiceConfig:
    """Complete backup service configuration.

    Attributes:
        storage: Backup destination
        s3: S3 configuration (if storage type is S3)
        pipeline: Queue and worker settings
        observability: Logging settings
    """

    storage: RemoteStorageConfig = field(default_factory=RemoteStorageConfig)
    s3: S3Config = field(default_factory=S3Config)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigurationError: If the backend is unknown or misconfigured.
        """
        config = cls(
            storage=RemoteStorageConfig.from_env(),
            s3=S3Config.from_env(),
            pipeline=PipelineConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        storage_type = self.storage.storage_type
        if storage_type == StorageType.SFTP:
            if not self.storage.host:
                raise ConfigurationError("BACKUP_HOST is required when BACKUP_STORAGE_TYPE=sftp")
            if not 0 < self.storage.port < 65536:
                raise ConfigurationError(f"Invalid SFTP port: {self.storage.port}")
        elif storage_type == StorageType.S3:
            if not self.s3.bucket:
                raise ConfigurationError("S3_BUCKET is required when BACKUP_STORAGE_TYPE=s3")
        elif storage_type == StorageType.FILE:
            if not self.storage.remote_path.strip():
                # Kept as a no-op backend, see LocalStorageProvider.
                logger.warning(
                    "BACKUP_REMOTE_PATH is empty, file backups will be skipped"
                )

        if self.pipeline.poll_interval_seconds <= 0:
            raise ConfigurationError("BACKUP_POLL_INTERVAL_SECONDS must be positive")
        if self.pipeline.stop_timeout_seconds < 0:
            raise ConfigurationError("BACKUP_STOP_TIMEOUT_SECONDS must not be negative")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        storage_type = self.storage.storage_type
        logger.info(
            "Backup configuration loaded",
            extra={
                "storage_type": storage_type.value,
                "host": self.storage.host if storage_type == StorageType.SFTP else None,
                "port": self.storage.port if storage_type == StorageType.SFTP else None,
                "username": self.storage.username if storage_type == StorageType.SFTP else None,
                "remote_path": self.storage.remote_path,
                "s3_bucket": self.s3.bucket if storage_type == StorageType.S3 else None,
                "poll_interval_seconds": self.pipeline.poll_interval_seconds,
                "temp_dir": self.pipeline.temp_dir,
                "log_level": self.observability.log_level,
            },
        )
