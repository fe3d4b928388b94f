"""
S3 storage backend.

Snapshot objects are written as:
    s3://<bucket>/<prefix>/<destination_name>

Invariants:
    - One client per store() call, closed before returning
    - put_object returning is the durability acknowledgment
    - botocore failures raise StorageUnavailable
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3Config
from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)


class S3StorageProvider:
    """Uploads snapshots to an S3-compatible bucket.

    Attributes:
        s3_config: Bucket, region, endpoint and credentials
    """

    def __init__(self, s3_config: S3Config) -> None:
        self.s3_config = s3_config

    def key_for(self, destination_name: str) -> str:
        prefix = self.s3_config.prefix.strip("/")
        return f"{prefix}/{destination_name}" if prefix else destination_name

    def _client_kwargs(self) -> dict[str, Any]:
        client_kwargs: dict[str, Any] = {"region_name": self.s3_config.region}

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        return client_kwargs

    async def store(self, stream: BinaryIO, destination_name: str) -> None:
        """Upload ``stream`` as a single object."""
        key = self.key_for(destination_name)
        body = stream.read()

        session = get_session()
        try:
            async with session.create_client("s3", **self._client_kwargs()) as s3:
                await s3.put_object(
                    Bucket=self.s3_config.bucket,
                    Key=key,
                    Body=body,
                    ContentType="application/x-sqlite3",
                )
        except (BotoCoreError, ClientError) as e:
            raise StorageUnavailable(
                f"S3 upload to s3://{self.s3_config.bucket}/{key} failed: {e}"
            ) from e

        logger.info(
            "Uploaded backup to S3",
            extra={"bucket": self.s3_config.bucket, "key": key, "size_bytes": len(body)},
        )
