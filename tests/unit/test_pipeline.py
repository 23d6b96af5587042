"""
Unit tests for the upload pipeline.

The media tools and the object store are replaced by in-process fakes, so
these tests exercise sequencing, size limits and temp-file cleanup without
ffmpeg or network access. Every pipeline writes its temp files to the
test's tmp_path, which must be empty again when ``run`` returns or raises.
"""

import asyncio
import io
import re
from pathlib import Path

import pytest

from src.core.videos.errors import (
    NoStreamFoundError,
    PayloadTooLargeError,
    ProbeFailedError,
    RemuxFailedError,
    UnsupportedMediaTypeError,
    UploadFailedError,
)
from src.core.videos.keys import fast_start_output_path
from src.core.videos.models import VideoGeometry
from src.core.videos.pipeline import PipelineState, UploadJob, UploadPipeline
from src.infrastructure.storage.client import MockStorageClient, StorageError
from src.infrastructure.video.processor import MockVideoProcessor

PAYLOAD = b"\x00\x00\x00\x18ftypmp42" + b"x" * 64


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeProcessor:
    """Records calls; remux prefixes the bytes so the upload is traceable."""

    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        probe_error: Exception = None,
        remux_error: Exception = None,
        write_partial_output: bool = False,
        block_remux: bool = False,
    ):
        self.geometry = VideoGeometry(width=width, height=height)
        self.probe_error = probe_error
        self.remux_error = remux_error
        self.write_partial_output = write_partial_output
        self.block_remux = block_remux
        self.remux_started = None
        self.calls: list[tuple[str, Path]] = []

    async def probe_geometry(self, path):
        self.calls.append(("probe", Path(path)))
        assert Path(path).read_bytes() == PAYLOAD
        if self.probe_error:
            raise self.probe_error
        return self.geometry

    async def remux_for_fast_start(self, path):
        self.calls.append(("remux", Path(path)))
        output = fast_start_output_path(path)
        if self.write_partial_output or self.block_remux:
            output.write_bytes(b"partial")
        if self.block_remux:
            self.remux_started.set()
            await asyncio.sleep(3600)
        if self.remux_error:
            raise self.remux_error
        output.write_bytes(b"faststart:" + Path(path).read_bytes())
        return output


class FakeStore:
    bucket_name = "test-bucket"

    def __init__(self, error: Exception = None):
        self.error = error
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def upload_video(self, body, key, content_type):
        if self.error:
            raise self.error
        self.objects[key] = (body.read(), content_type)
        return key


class UnseekableStream(io.RawIOBase):
    """A request body that can only be read forward."""

    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, buffer):
        chunk = self._inner.read(len(buffer))
        buffer[:len(chunk)] = chunk
        return len(chunk)


def _run(pipeline, source, media_type="video/mp4", declared_size=None):
    return asyncio.run(pipeline.run(source, media_type, declared_size=declared_size))


def _leftovers(directory: Path) -> list[Path]:
    return sorted(directory.iterdir())


# ---------------------------------------------------------------------------
# Happy Path
# ---------------------------------------------------------------------------

class TestSuccessfulUpload:

    def test_stores_fast_start_copy_under_landscape_key(self, tmp_path):
        processor, store = FakeProcessor(), FakeStore()
        pipeline = UploadPipeline(processor, store, temp_dir=str(tmp_path))

        ref = _run(pipeline, io.BytesIO(PAYLOAD))

        assert ref.bucket == "test-bucket"
        assert re.match(r"^landscape/[A-Za-z0-9_-]{43}\.mp4$", ref.key)
        assert store.objects[ref.key] == (b"faststart:" + PAYLOAD, "video/mp4")

    def test_portrait_geometry_lands_in_portrait_prefix(self, tmp_path):
        pipeline = UploadPipeline(FakeProcessor(1080, 1920), FakeStore(), temp_dir=str(tmp_path))

        ref = _run(pipeline, io.BytesIO(PAYLOAD))

        assert ref.key.startswith("portrait/")

    @pytest.mark.parametrize("width,height", [(1366, 768), (640, 480), (1440, 1080)])
    def test_non_widescreen_landscape_keeps_historical_prefix(self, tmp_path, width, height):
        pipeline = UploadPipeline(FakeProcessor(width, height), FakeStore(), temp_dir=str(tmp_path))

        ref = _run(pipeline, io.BytesIO(PAYLOAD))

        assert ref.key.startswith("landscape/")

    def test_exact_rule_can_be_selected(self, tmp_path):
        pipeline = UploadPipeline(
            FakeProcessor(1366, 768),
            FakeStore(),
            temp_dir=str(tmp_path),
            exact_orientation=True,
        )

        ref = _run(pipeline, io.BytesIO(PAYLOAD))

        assert ref.key.startswith("other/")

    def test_steps_run_in_order_against_buffered_file(self, tmp_path):
        processor = FakeProcessor()
        pipeline = UploadPipeline(processor, FakeStore(), temp_dir=str(tmp_path))

        _run(pipeline, io.BytesIO(PAYLOAD))

        assert [name for name, _ in processor.calls] == ["probe", "remux"]
        probed, remuxed = processor.calls[0][1], processor.calls[1][1]
        assert probed == remuxed
        assert probed.parent == tmp_path
        assert probed.suffix == ".mp4"

    def test_all_temp_files_removed_after_success(self, tmp_path):
        pipeline = UploadPipeline(FakeProcessor(), FakeStore(), temp_dir=str(tmp_path))

        _run(pipeline, io.BytesIO(PAYLOAD))

        assert _leftovers(tmp_path) == []

    def test_unseekable_stream_is_buffered(self, tmp_path):
        store = FakeStore()
        pipeline = UploadPipeline(FakeProcessor(), store, temp_dir=str(tmp_path))

        ref = _run(pipeline, UnseekableStream(PAYLOAD))

        assert store.objects[ref.key][0] == b"faststart:" + PAYLOAD

    def test_runs_against_infrastructure_mocks(self, tmp_path):
        storage = MockStorageClient(bucket_name="mock-bucket")
        pipeline = UploadPipeline(MockVideoProcessor(1080, 1920), storage, temp_dir=str(tmp_path))

        ref = _run(pipeline, io.BytesIO(PAYLOAD))

        assert ref.bucket == "mock-bucket"
        assert ref.key.startswith("portrait/")
        assert storage.objects[("mock-bucket", ref.key)] == PAYLOAD
        assert _leftovers(tmp_path) == []


# ---------------------------------------------------------------------------
# Rejections Before Any Tool Runs
# ---------------------------------------------------------------------------

class TestEarlyRejection:

    def test_oversized_payload_rejected_before_subprocess(self, tmp_path):
        processor = FakeProcessor()
        pipeline = UploadPipeline(processor, FakeStore(), max_upload_bytes=16, temp_dir=str(tmp_path))

        with pytest.raises(PayloadTooLargeError):
            _run(pipeline, io.BytesIO(PAYLOAD))

        assert processor.calls == []
        assert _leftovers(tmp_path) == []

    def test_declared_size_is_checked_before_reading(self, tmp_path):
        source = io.BytesIO(PAYLOAD)
        pipeline = UploadPipeline(FakeProcessor(), FakeStore(), max_upload_bytes=16, temp_dir=str(tmp_path))

        with pytest.raises(PayloadTooLargeError):
            _run(pipeline, source, declared_size=10_000)

        assert source.tell() == 0

    def test_understated_size_caught_while_buffering(self, tmp_path):
        processor = FakeProcessor()
        pipeline = UploadPipeline(processor, FakeStore(), max_upload_bytes=16, temp_dir=str(tmp_path))

        with pytest.raises(PayloadTooLargeError):
            _run(pipeline, io.BytesIO(PAYLOAD), declared_size=4)

        assert processor.calls == []
        assert _leftovers(tmp_path) == []

    def test_oversized_unseekable_stream_caught_while_buffering(self, tmp_path):
        processor = FakeProcessor()
        pipeline = UploadPipeline(processor, FakeStore(), max_upload_bytes=16, temp_dir=str(tmp_path))

        with pytest.raises(PayloadTooLargeError):
            _run(pipeline, UnseekableStream(PAYLOAD))

        assert processor.calls == []
        assert _leftovers(tmp_path) == []

    def test_payload_exactly_at_limit_is_accepted(self, tmp_path):
        pipeline = UploadPipeline(
            FakeProcessor(), FakeStore(), max_upload_bytes=len(PAYLOAD), temp_dir=str(tmp_path)
        )

        _run(pipeline, io.BytesIO(PAYLOAD))

    def test_unsupported_media_type_rejected_before_buffering(self, tmp_path):
        processor = FakeProcessor()
        pipeline = UploadPipeline(processor, FakeStore(), temp_dir=str(tmp_path))

        with pytest.raises(UnsupportedMediaTypeError):
            _run(pipeline, io.BytesIO(PAYLOAD), media_type="video/quicktime")

        assert processor.calls == []
        assert _leftovers(tmp_path) == []


# ---------------------------------------------------------------------------
# Failures Mid-Pipeline
# ---------------------------------------------------------------------------

class TestFailureCleanup:

    @pytest.mark.parametrize("error", [
        ProbeFailedError("ffprobe exited with status 1"),
        NoStreamFoundError("No streams found"),
    ])
    def test_probe_failure_stops_before_remux(self, tmp_path, error):
        processor = FakeProcessor(probe_error=error)
        store = FakeStore()
        pipeline = UploadPipeline(processor, store, temp_dir=str(tmp_path))

        with pytest.raises(type(error)):
            _run(pipeline, io.BytesIO(PAYLOAD))

        assert [name for name, _ in processor.calls] == ["probe"]
        assert store.objects == {}
        assert _leftovers(tmp_path) == []

    def test_remux_failure_removes_partial_output(self, tmp_path):
        processor = FakeProcessor(
            remux_error=RemuxFailedError("ffmpeg exited with status 1"),
            write_partial_output=True,
        )
        store = FakeStore()
        pipeline = UploadPipeline(processor, store, temp_dir=str(tmp_path))

        with pytest.raises(RemuxFailedError):
            _run(pipeline, io.BytesIO(PAYLOAD))

        assert store.objects == {}
        assert _leftovers(tmp_path) == []

    def test_store_error_becomes_upload_failed(self, tmp_path):
        pipeline = UploadPipeline(
            FakeProcessor(),
            FakeStore(error=StorageError("Video upload failed: AccessDenied")),
            temp_dir=str(tmp_path),
        )

        with pytest.raises(UploadFailedError):
            _run(pipeline, io.BytesIO(PAYLOAD))

        assert _leftovers(tmp_path) == []

    def test_cancellation_cleans_up_and_propagates(self, tmp_path):
        processor = FakeProcessor(block_remux=True)
        pipeline = UploadPipeline(processor, FakeStore(), temp_dir=str(tmp_path))

        async def scenario():
            processor.remux_started = asyncio.Event()
            task = asyncio.create_task(pipeline.run(io.BytesIO(PAYLOAD), "video/mp4"))
            await processor.remux_started.wait()
            assert len(_leftovers(tmp_path)) == 2
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert _leftovers(tmp_path) == []


# ---------------------------------------------------------------------------
# UploadJob State Machine
# ---------------------------------------------------------------------------

class TestUploadJob:

    def test_states_advance_linearly(self):
        job = UploadJob(media_type="video/mp4")

        for state in (
            PipelineState.BUFFERED_LOCALLY,
            PipelineState.INSPECTED,
            PipelineState.REWRITTEN,
            PipelineState.UPLOADED,
            PipelineState.COMMITTED,
        ):
            job.advance(state)

        assert job.state is PipelineState.COMMITTED
        assert job.is_terminal

    def test_skipping_a_state_is_refused(self):
        job = UploadJob(media_type="video/mp4")

        with pytest.raises(RuntimeError, match="Illegal transition"):
            job.advance(PipelineState.REWRITTEN)

    def test_fail_is_terminal_from_any_state(self):
        job = UploadJob(media_type="video/mp4")
        job.advance(PipelineState.BUFFERED_LOCALLY)
        error = ProbeFailedError("boom")

        job.fail(error)

        assert job.state is PipelineState.FAILED
        assert job.failure is error
        with pytest.raises(RuntimeError):
            job.advance(PipelineState.INSPECTED)

    def test_release_removes_each_tracked_path_once(self, tmp_path):
        job = UploadJob(media_type="video/mp4")
        created = tmp_path / "a.mp4"
        created.write_bytes(b"data")
        never_created = tmp_path / "a.mp4.processing"

        job.track(created)
        job.track(created)
        job.track(never_created)

        assert job.release_temp_files() == [created]
        assert not created.exists()
        assert job.release_temp_files() == []
