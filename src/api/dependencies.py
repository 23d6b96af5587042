"""
FastAPI dependency injection.

Dependencies provide services, clients and configuration to route
handlers, so routes never build their own collaborators and tests can
swap any of them through ``app.dependency_overrides``.

The storage client and video processor are shared across requests; both
are safe for concurrent use. Database connections are per request, except
in mock mode where one in-memory connection is kept so data persists for
the life of the process.
"""

import logging
from typing import Annotated, Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.videos.errors import UnauthorizedError
from ..core.videos.pipeline import UploadPipeline
from ..core.videos.ports import StorageClient, VideoProcessor
from ..infrastructure.snowflake.client import MockSnowflakeConnection, get_snowflake_connection
from ..infrastructure.snowflake.repositories.videos import SnowflakeConfig, VideoRepository
from ..infrastructure.storage.client import StorageConfig, create_storage_client
from ..infrastructure.video.processor import create_video_processor

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Shared instances (created lazily, reused across requests)
_storage_client: Optional[StorageClient] = None
_video_processor: Optional[VideoProcessor] = None
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> UUID:
    """
    Resolve the acting user from the X-User-Id header.

    Identity is established upstream; this only checks that one was
    supplied and is well formed.
    """
    if not x_user_id:
        raise UnauthorizedError("X-User-Id header missing")

    try:
        return UUID(x_user_id)
    except ValueError:
        logger.warning("Malformed X-User-Id header")
        raise UnauthorizedError(f"X-User-Id is not a UUID: {x_user_id[:40]!r}")


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_video_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[VideoRepository, None, None]:
    """
    Provide VideoRepository with database connection.

    Generator so FastAPI closes the connection after the request.
    """
    global _mock_snowflake_connection

    if settings.snowflake_mock_mode:
        if _mock_snowflake_connection is None:
            _mock_snowflake_connection = MockSnowflakeConnection()
            logger.info("Created shared mock Snowflake connection")
        yield VideoRepository(_mock_snowflake_connection)
        return

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    with get_snowflake_connection(config) as conn:
        yield VideoRepository(conn)


def get_storage_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClient:
    """Provide the shared storage client (R2 or mock based on settings)."""
    global _storage_client

    if _storage_client is None:
        config = StorageConfig(
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            bucket_name=settings.r2_bucket_name,
            endpoint_url=settings.r2_endpoint,
            region=settings.r2_region,
            addressing_style=settings.r2_addressing_style,
        )
        _storage_client = create_storage_client(
            config=config,
            mock_mode=settings.r2_mock_mode,
        )
        logger.info("Created shared storage client", extra={"mock": settings.r2_mock_mode})

    return _storage_client


def get_video_processor(
    settings: Annotated[Settings, Depends(get_settings)],
) -> VideoProcessor:
    """Provide the shared FFmpeg (or mock) video processor."""
    global _video_processor

    if _video_processor is None:
        _video_processor = create_video_processor(
            mock_mode=settings.media_mock_mode,
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            probe_timeout_seconds=settings.probe_timeout_seconds,
            remux_timeout_seconds=settings.remux_timeout_seconds,
        )

    return _video_processor


def get_upload_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    processor: Annotated[VideoProcessor, Depends(get_video_processor)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
) -> UploadPipeline:
    """A fresh pipeline per request; it holds no state between runs."""
    return UploadPipeline(
        processor=processor,
        storage=storage,
        max_upload_bytes=settings.max_upload_bytes,
        temp_dir=settings.upload_temp_dir,
        exact_orientation=settings.exact_orientation,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
VideoRepositoryDep = Annotated[VideoRepository, Depends(get_video_repository)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
UploadPipelineDep = Annotated[UploadPipeline, Depends(get_upload_pipeline)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
