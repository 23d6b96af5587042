"""
Signed read access to stored videos.

A signed URL embeds expiring credentials, so it is produced fresh on every
read and never written back to storage. The stored ``<bucket>,<key>``
reference is the only durable thing.
"""

import logging

from .errors import SigningFailedError
from .models import StoredVideoReference, VideoRecord
from .ports import StorageClient

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SECONDS = 3600


async def generate_signed_url(
    signer: StorageClient,
    stored_reference: str,
    expires_in: int = DEFAULT_EXPIRY_SECONDS,
) -> str:
    """
    Turn a stored reference string into a time-limited GET URL.

    Raises InvalidReferenceError for anything that is not exactly one
    ``bucket,key`` pair, before the signer is called.
    """
    if expires_in <= 0:
        raise ValueError("expires_in must be positive")

    reference = StoredVideoReference.parse(stored_reference)
    try:
        return await signer.get_presigned_url(
            reference.bucket,
            reference.key,
            expiry_seconds=expires_in,
        )
    except Exception as e:
        raise SigningFailedError(f"Signing {reference.key} failed: {e}")


async def sign_video(
    record: VideoRecord,
    signer: StorageClient,
    expires_in: int = DEFAULT_EXPIRY_SECONDS,
) -> VideoRecord:
    """Copy of ``record`` with its stored reference swapped for a signed URL."""
    if record.video_url is None:
        return record

    url = await generate_signed_url(signer, record.video_url, expires_in)
    logger.debug(
        "Signed video URL",
        extra={"video_id": str(record.id), "expires_in": expires_in}
    )
    return record.with_video_url(url)


async def sign_videos(
    records: list[VideoRecord],
    signer: StorageClient,
    expires_in: int = DEFAULT_EXPIRY_SECONDS,
) -> list[VideoRecord]:
    return [await sign_video(record, signer, expires_in) for record in records]
