"""
Snowflake repository for video records.

The repository translates between VideoRecord and rows of the ``videos``
table. ``video_url`` is stored exactly as the upload pipeline encoded it
(``<bucket>,<key>``) so rows written by older deployments stay readable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from src.core.videos.errors import PersistenceFailedError, VideoNotFoundError
from src.core.videos.models import VideoRecord

logger = logging.getLogger(__name__)

_COLUMNS = "video_id, user_id, title, description, video_url, created_at, updated_at"


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Tests provide the in-memory mock without importing
    snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "REELSTORE"
    schema: str = "MEDIA"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class VideoRepository:
    """
    Repository for video record persistence.

    - create_video: insert a draft record
    - get_video: load one record by ID
    - list_videos_for_user: a user's records, newest first
    - update_video: write back title, description and stored reference
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def create_video(self, video: VideoRecord) -> VideoRecord:
        cursor = self._conn.cursor()
        try:
            cursor.execute(f"""
                INSERT INTO videos ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s)
            """, self._to_row(video))
            self._conn.commit()
        except Exception as e:
            logger.error(
                "Failed to create video",
                extra={"video_id": str(video.id), "error": str(e)}
            )
            raise PersistenceFailedError(f"Insert failed: {e}", safe_message="Couldn't create video")
        finally:
            cursor.close()

        return video

    def get_video(self, video_id: UUID) -> VideoRecord:
        cursor = self._conn.cursor()
        try:
            cursor.execute(f"""
                SELECT {_COLUMNS}
                FROM videos
                WHERE video_id = %s
            """, (str(video_id),))
            row = cursor.fetchone()
        finally:
            cursor.close()

        if not row:
            raise VideoNotFoundError(f"Video {video_id} not found")

        return self._from_row(row)

    def list_videos_for_user(self, user_id: UUID, limit: int = 100) -> list[VideoRecord]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(f"""
                SELECT {_COLUMNS}
                FROM videos
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
            """, (str(user_id), limit))
            rows = cursor.fetchall()
        finally:
            cursor.close()

        return [self._from_row(row) for row in rows]

    def update_video(self, video: VideoRecord) -> None:
        """
        Persist changed fields of an existing record.

        Raises VideoNotFoundError if no row matched and
        PersistenceFailedError if the write itself failed.
        """
        cursor = self._conn.cursor()
        try:
            cursor.execute("""
                UPDATE videos
                SET title = %s,
                    description = %s,
                    video_url = %s,
                    updated_at = %s
                WHERE video_id = %s
            """, (
                video.title,
                video.description,
                video.video_url,
                video.updated_at,
                str(video.id),
            ))
            updated = cursor.rowcount
            self._conn.commit()
        except Exception as e:
            logger.error(
                "Failed to update video",
                extra={"video_id": str(video.id), "error": str(e)}
            )
            raise PersistenceFailedError(f"Update failed: {e}")
        finally:
            cursor.close()

        if updated == 0:
            raise VideoNotFoundError(f"Video {video.id} not found")

    # -----------------------------------------------------------------------
    # Row Mapping
    # -----------------------------------------------------------------------

    @staticmethod
    def _to_row(video: VideoRecord) -> tuple:
        return (
            str(video.id),
            str(video.user_id),
            video.title,
            video.description,
            video.video_url,
            video.created_at,
            video.updated_at,
        )

    @staticmethod
    def _from_row(row: tuple) -> VideoRecord:
        video_id, user_id, title, description, video_url, created_at, updated_at = row
        return VideoRecord(
            id=UUID(str(video_id)),
            user_id=UUID(str(user_id)),
            title=title,
            description=description or "",
            video_url=video_url,
            created_at=_as_datetime(created_at),
            updated_at=_as_datetime(updated_at),
        )


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
