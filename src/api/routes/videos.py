"""
Video API endpoints.

Flow:
1. Client creates a draft video record (title, description)
2. Client uploads the MP4 for that record
   → buffered, probed, remuxed for fast start, stored under
     ``<orientation>/<token>.mp4``, reference written to the record
3. Reads return the record with a freshly signed, expiring URL

Stored records only ever hold ``<bucket>,<key>``; signed URLs are built
per response and never persisted.
"""

import logging
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, UploadFile, status
from pydantic import BaseModel, Field

from ...core.videos.access import sign_video, sign_videos
from ...core.videos.errors import InvalidInputError, VideoNotFoundError
from ...core.videos.keys import parse_media_type
from ...core.videos.models import VideoRecord
from ..dependencies import (
    AuthenticatedUser,
    CurrentUserId,
    SettingsDep,
    StorageClientDep,
    UploadPipelineDep,
    VideoRepositoryDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CreateVideoRequest(BaseModel):
    """Request to create a draft video record."""
    title: str = Field(min_length=1, max_length=200, description="Video title")
    description: str = Field(default="", max_length=5000, description="Video description")


class VideoResponse(BaseModel):
    """A video record as seen by its owner."""
    id: UUID = Field(description="Video identifier")
    user_id: UUID = Field(description="Owning user")
    title: str
    description: str
    video_url: Optional[str] = Field(
        None,
        description="Signed, expiring URL for the video, or null before upload"
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: VideoRecord) -> "VideoResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            title=record.title,
            description=record.description,
            video_url=record.video_url,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_video_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise InvalidInputError(f"Bad video id {raw!r}", safe_message="Invalid ID")


def _load_owned_video(
    repository,
    video_id: UUID,
    user_id: UUID,
) -> VideoRecord:
    """Load a record, treating someone else's video as missing."""
    record = repository.get_video(video_id)
    if record.user_id != user_id:
        logger.warning(
            "Video access by non-owner",
            extra={"video_id": str(video_id), "user_id": str(user_id)}
        )
        raise VideoNotFoundError(f"Video {video_id} not owned by {user_id}")
    return record


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create video record",
)
async def create_video(
    request: CreateVideoRequest,
    api_key: AuthenticatedUser,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
) -> VideoResponse:
    try:
        draft = VideoRecord(
            user_id=user_id,
            title=request.title,
            description=request.description,
        )
    except ValueError as e:
        raise InvalidInputError(str(e), safe_message=str(e))

    record = repository.create_video(draft)

    logger.info(
        "Video record created",
        extra={"video_id": str(record.id), "user_id": str(user_id)}
    )
    return VideoResponse.from_record(record)


@router.get(
    "",
    response_model=list[VideoResponse],
    summary="List my videos",
)
async def list_videos(
    api_key: AuthenticatedUser,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> list[VideoResponse]:
    records = repository.list_videos_for_user(user_id)
    signed = await sign_videos(records, storage, settings.signed_url_expiry_seconds)
    return [VideoResponse.from_record(record) for record in signed]


@router.get(
    "/{video_id}",
    response_model=VideoResponse,
    summary="Get one video",
)
async def get_video(
    video_id: str,
    api_key: AuthenticatedUser,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> VideoResponse:
    record = _load_owned_video(repository, _parse_video_id(video_id), user_id)
    signed = await sign_video(record, storage, settings.signed_url_expiry_seconds)
    return VideoResponse.from_record(signed)


@router.post(
    "/{video_id}/upload",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload the video file",
    description="Upload an MP4 for an existing video record. The file is remuxed for fast start before storage.",
)
async def upload_video(
    video_id: str,
    api_key: AuthenticatedUser,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    pipeline: UploadPipelineDep,
    storage: StorageClientDep,
    settings: SettingsDep,
    video: Annotated[Optional[UploadFile], File(description="MP4 video")] = None,
) -> VideoResponse:
    """
    Run the upload pipeline for a video the caller owns.

    The record is only updated once the object is in storage; on any
    pipeline failure it is left as it was.
    """
    record = _load_owned_video(repository, _parse_video_id(video_id), user_id)

    if video is None:
        raise InvalidInputError("Multipart field 'video' missing", safe_message="Couldn't get file")

    media_type = parse_media_type(video.content_type or "")

    logger.info(
        "Video upload started",
        extra={
            "video_id": str(record.id),
            "user_id": str(user_id),
            "media_type": media_type,
            "size_bytes": video.size,
        }
    )

    try:
        reference = await pipeline.run(video.file, media_type, declared_size=video.size)
    finally:
        await video.close()

    record.attach_reference(reference)
    repository.update_video(record)

    logger.info(
        "Video upload committed",
        extra={"video_id": str(record.id), "key": reference.key}
    )

    signed = await sign_video(record, storage, settings.signed_url_expiry_seconds)
    return VideoResponse.from_record(signed)
