"""
Upload pipeline: buffer → inspect → rewrite → upload → commit.

Each run gets its own UploadJob. The job records which state it reached
and every temporary path it created; ``UploadJob.release_temp_files`` drains
that list exactly once when ``run`` exits, whether it returns, raises or is
cancelled. The state machine is linear with no retries: the first failure
moves the job to FAILED and is re-raised to the caller.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional
from uuid import UUID, uuid4

from .errors import (
    PayloadTooLargeError,
    UploadFailedError,
    VideoServiceError,
)
from .keys import build_object_key, extension_for, fast_start_output_path, generate_token
from .models import Orientation, StoredVideoReference
from .ports import StorageClient, VideoProcessor

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 1 << 30  # 1 GiB
COPY_CHUNK_BYTES = 1 << 20


class PipelineState(Enum):
    RECEIVED = "received"
    BUFFERED_LOCALLY = "buffered_locally"
    INSPECTED = "inspected"
    REWRITTEN = "rewritten"
    UPLOADED = "uploaded"
    COMMITTED = "committed"
    FAILED = "failed"


_NEXT_STATE = {
    PipelineState.RECEIVED: PipelineState.BUFFERED_LOCALLY,
    PipelineState.BUFFERED_LOCALLY: PipelineState.INSPECTED,
    PipelineState.INSPECTED: PipelineState.REWRITTEN,
    PipelineState.REWRITTEN: PipelineState.UPLOADED,
    PipelineState.UPLOADED: PipelineState.COMMITTED,
}


@dataclass
class UploadJob:
    """Per-request pipeline state. Never shared between requests."""
    media_type: str
    id: UUID = field(default_factory=uuid4)
    state: PipelineState = PipelineState.RECEIVED
    orientation: Optional[Orientation] = None
    original_path: Optional[Path] = None
    rewritten_path: Optional[Path] = None
    object_key: Optional[str] = None
    failure: Optional[BaseException] = None
    cleanup_paths: list[Path] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in (PipelineState.COMMITTED, PipelineState.FAILED)

    def advance(self, state: PipelineState) -> None:
        if _NEXT_STATE.get(self.state) is not state:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        self.state = state
        logger.debug(
            "Upload job advanced",
            extra={"job_id": str(self.id), "state": state.value}
        )

    def fail(self, error: BaseException) -> None:
        if self.is_terminal:
            return
        logger.warning(
            "Upload job failed",
            extra={
                "job_id": str(self.id),
                "state": self.state.value,
                "error_type": type(error).__name__,
                "error": str(error),
            }
        )
        self.failure = error
        self.state = PipelineState.FAILED

    def track(self, path: Path) -> Path:
        """Schedule ``path`` for removal when the job is released."""
        if path not in self.cleanup_paths:
            self.cleanup_paths.append(path)
        return path

    def release_temp_files(self) -> list[Path]:
        """Remove every tracked path that exists. Returns the removed paths."""
        removed: list[Path] = []
        while self.cleanup_paths:
            path = self.cleanup_paths.pop()
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(
                    "Failed to remove temp file",
                    extra={"job_id": str(self.id), "path": str(path), "error": str(e)}
                )
                continue
            removed.append(path)
        return removed


class UploadPipeline:
    """
    Drives one uploaded video from request body to object store.

    The caller owns authentication, record lookup and persisting the
    returned reference; this class owns temp files and the external tools.
    """

    def __init__(
        self,
        processor: VideoProcessor,
        storage: StorageClient,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        temp_dir: Optional[str] = None,
        exact_orientation: bool = False,
    ) -> None:
        self._processor = processor
        self._storage = storage
        self._max_upload_bytes = max_upload_bytes
        self._temp_dir = temp_dir
        self._exact_orientation = exact_orientation

    async def run(
        self,
        source: BinaryIO,
        media_type: str,
        declared_size: Optional[int] = None,
    ) -> StoredVideoReference:
        """
        Process ``source`` and return where the fast-start copy was stored.

        Raises the first VideoServiceError hit. Temp files are gone by the
        time this returns or raises.
        """
        job = UploadJob(media_type=media_type)
        logger.info(
            "Upload pipeline started",
            extra={"job_id": str(job.id), "media_type": media_type}
        )

        try:
            reference = await self._drive(job, source, declared_size)
        except BaseException as e:
            job.fail(e)
            raise
        finally:
            removed = job.release_temp_files()
            logger.debug(
                "Released temp files",
                extra={"job_id": str(job.id), "count": len(removed)}
            )

        logger.info(
            "Upload pipeline committed",
            extra={"job_id": str(job.id), "key": reference.key}
        )
        return reference

    async def _drive(
        self,
        job: UploadJob,
        source: BinaryIO,
        declared_size: Optional[int],
    ) -> StoredVideoReference:
        extension = extension_for(job.media_type)

        size = declared_size if declared_size is not None else _measure(source)
        if size is not None and size > self._max_upload_bytes:
            raise PayloadTooLargeError(
                f"Payload of {size} bytes exceeds {self._max_upload_bytes}"
            )

        job.original_path = self._create_temp_file(job, extension)
        await asyncio.to_thread(
            _copy_capped, source, job.original_path, self._max_upload_bytes
        )
        job.advance(PipelineState.BUFFERED_LOCALLY)

        geometry = await self._processor.probe_geometry(job.original_path)
        job.orientation = Orientation.from_dimensions(
            geometry.width,
            geometry.height,
            exact=self._exact_orientation,
        )
        job.advance(PipelineState.INSPECTED)

        # registered before the tool runs so partial output is removed too
        job.track(fast_start_output_path(job.original_path))
        job.rewritten_path = job.track(
            await self._processor.remux_for_fast_start(job.original_path)
        )
        job.advance(PipelineState.REWRITTEN)

        job.object_key = build_object_key(job.media_type, job.orientation)
        try:
            with open(job.rewritten_path, "rb") as body:
                await self._storage.upload_video(body, job.object_key, job.media_type)
        except VideoServiceError:
            raise
        except Exception as e:
            raise UploadFailedError(f"Upload of {job.object_key} failed: {e}")
        job.advance(PipelineState.UPLOADED)

        reference = StoredVideoReference(
            bucket=self._storage.bucket_name,
            key=job.object_key,
        )
        job.advance(PipelineState.COMMITTED)
        return reference

    def _create_temp_file(self, job: UploadJob, extension: str) -> Path:
        fd, name = tempfile.mkstemp(
            prefix=f"{generate_token()[:16]}-",
            suffix=f".{extension}",
            dir=self._temp_dir,
        )
        os.close(fd)
        return job.track(Path(name))


def _measure(source: BinaryIO) -> Optional[int]:
    """Remaining bytes in a seekable stream, or None if it can't seek."""
    try:
        if not source.seekable():
            return None
        position = source.tell()
        end = source.seek(0, os.SEEK_END)
        source.seek(position)
    except (AttributeError, OSError):
        return None
    return end - position


def _copy_capped(source: BinaryIO, destination: Path, limit: int) -> int:
    """
    Copy ``source`` into ``destination``, refusing to exceed ``limit`` bytes.

    Guards against streams whose declared size understates the body.
    """
    copied = 0
    with open(destination, "wb") as out:
        while True:
            chunk = source.read(COPY_CHUNK_BYTES)
            if not chunk:
                break
            copied += len(chunk)
            if copied > limit:
                raise PayloadTooLargeError(f"Payload exceeds {limit} bytes while buffering")
            out.write(chunk)
    return copied
