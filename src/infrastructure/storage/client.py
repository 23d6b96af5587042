"""
Object storage client for uploaded videos.

Talks to any S3-compatible store (Cloudflare R2 by default) through boto3.
Two operations matter to the rest of the service:
- upload_video: stream a local file to ``bucket/key`` with a content type
- get_presigned_url: time-limited GET URL for ``bucket/key``

Presigning is a local computation over the configured credentials; it does
not contact the store, so it works the same for mock and real endpoints.

Mock mode keeps objects in memory for local development and tests.
"""

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import BinaryIO, Optional
from urllib.parse import quote, urlencode

import boto3
from botocore.config import Config

from ...core.videos.ports import StorageClient

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for R2/S3-compatible storage."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: Optional[str] = None
    region: str = "auto"  # R2 uses 'auto' for region
    addressing_style: str = "path"


class R2StorageClient:
    """
    S3-compatible object storage client.

    boto3 is synchronous, so the blocking calls are pushed to a worker
    thread to keep the event loop free while a large video uploads.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config

        # R2 requires v4 signatures
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': config.addressing_style},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized object storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    async def upload_video(
        self,
        body: BinaryIO,
        key: str,
        content_type: str,
    ) -> str:
        """
        Stream a video to the configured bucket.

        ``body`` is passed straight to put_object, so boto3 reads the file
        in chunks rather than loading it into memory.
        """
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._config.bucket_name,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except Exception as e:
            logger.error(
                "Failed to upload video",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Video upload failed: {e}")

        logger.info(
            "Uploaded video",
            extra={"bucket": self._config.bucket_name, "key": key}
        )
        return key

    async def get_presigned_url(
        self,
        bucket: str,
        key: str,
        expiry_seconds: int = 3600,
    ) -> str:
        """
        Generate a temporary download URL.

        The bucket comes from the stored reference, not from config, so
        objects written before a bucket change stay readable.
        """
        try:
            return self._s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': bucket, 'Key': key},
                ExpiresIn=expiry_seconds,
            )
        except Exception as e:
            logger.error(
                "Failed to generate presigned URL",
                extra={"bucket": bucket, "key": key, "error": str(e)}
            )
            raise StorageError(f"Presigned URL generation failed: {e}")


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development.

    Objects live in a dict keyed by (bucket, key). Presigned URLs imitate
    the S3 query-string format (bucket host, X-Amz-Expires, a signature over
    bucket/key/expiry) so callers see the same URL shape as in production.
    Not suitable for production.
    """

    def __init__(
        self,
        bucket_name: str = "mock-bucket",
        host_suffix: str = "mock-storage.local",
        signing_secret: str = "mock-secret",
    ) -> None:
        self._bucket_name = bucket_name
        self._host_suffix = host_suffix
        self._secret = signing_secret.encode()
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        logger.info("Initialized mock storage client (in-memory)")

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    async def upload_video(
        self,
        body: BinaryIO,
        key: str,
        content_type: str,
    ) -> str:
        data = body.read()
        self.objects[(self._bucket_name, key)] = data
        self.content_types[(self._bucket_name, key)] = content_type

        logger.debug(
            "Stored video in mock storage",
            extra={"key": key, "size_bytes": len(data)}
        )
        return key

    async def get_presigned_url(
        self,
        bucket: str,
        key: str,
        expiry_seconds: int = 3600,
    ) -> str:
        issued_at = int(time.time())
        message = f"{bucket}\n{key}\n{issued_at}\n{expiry_seconds}".encode()
        signature = hmac.new(self._secret, message, hashlib.sha256).hexdigest()
        query = urlencode({
            "X-Amz-Date": time.strftime("%Y%m%dT%H%M%SZ", time.gmtime(issued_at)),
            "X-Amz-Expires": expiry_seconds,
            "X-Amz-Signature": signature,
        })
        return f"https://{bucket}.{self._host_suffix}/{quote(key)}?{query}"


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Build the S3-compatible client, or the in-memory one in mock mode.

    In mock mode the configured bucket name is still honoured so stored
    references look the same as they would in production.
    """
    if mock_mode:
        if config is not None:
            return MockStorageClient(bucket_name=config.bucket_name)
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return R2StorageClient(config)
