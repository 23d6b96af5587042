"""
Interfaces the video core needs from the outside world.

Infrastructure implements these (FFmpegVideoProcessor, R2StorageClient and
their mocks); the pipeline and the signed-access helpers only ever see the
protocols, so tests can hand in in-process fakes.
"""

from pathlib import Path
from typing import BinaryIO, Protocol, Union

from .models import VideoGeometry

PathLike = Union[str, Path]


class VideoProcessor(Protocol):
    """Narrow interface over the external media tools."""

    async def probe_geometry(self, path: PathLike) -> VideoGeometry:
        """Return geometry of the first video stream."""
        ...

    async def remux_for_fast_start(self, path: PathLike) -> Path:
        """Write a fast-start copy next to ``path`` and return its path."""
        ...


class StorageClient(Protocol):
    """Object storage for uploaded videos."""

    @property
    def bucket_name(self) -> str:
        """Bucket new uploads are written to."""
        ...

    async def upload_video(
        self,
        body: BinaryIO,
        key: str,
        content_type: str,
    ) -> str:
        """Upload video bytes under ``key`` and return the key."""
        ...

    async def get_presigned_url(
        self,
        bucket: str,
        key: str,
        expiry_seconds: int = 3600,
    ) -> str:
        """Generate temporary download URL."""
        ...
