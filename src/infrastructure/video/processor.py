"""
Video tooling via FFprobe/FFmpeg.

Two operations, both against a local file path:
1. probe_geometry: read width/height of the first video stream (FFprobe)
2. remux_for_fast_start: move the moov atom to the front of the file
   without re-encoding (FFmpeg, stream copy)

Both tools need a seekable file on disk, which is why the upload pipeline
buffers the request body to a temp file before calling in here.

Each invocation runs under a timeout. A hung prober or muxer is killed
rather than left to hold the request open, and the same happens when the
awaiting task is cancelled.
"""

import asyncio
import json
import logging
import shutil
import subprocess
from pathlib import Path

from ...core.videos.errors import NoStreamFoundError, ProbeFailedError, RemuxFailedError
from ...core.videos.keys import fast_start_output_path
from ...core.videos.models import VideoGeometry
from ...core.videos.ports import PathLike, VideoProcessor

logger = logging.getLogger(__name__)


class ToolFailedError(Exception):
    """An external tool exited non-zero, timed out, or could not start."""
    pass


class FFmpegVideoProcessor:
    """Video processor backed by the ffprobe and ffmpeg binaries."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        probe_timeout_seconds: float = 60.0,
        remux_timeout_seconds: float = 600.0,
        verify_tools: bool = True,
    ):
        """
        Args:
            ffmpeg_path: Path to ffmpeg binary (default assumes it's in PATH)
            ffprobe_path: Path to ffprobe binary
            probe_timeout_seconds: Upper bound for a single probe
            remux_timeout_seconds: Upper bound for a single remux
            verify_tools: Run ``-version`` on both binaries at construction
        """
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self._probe_timeout = probe_timeout_seconds
        self._remux_timeout = remux_timeout_seconds

        if verify_tools:
            for binary in (self._ffmpeg, self._ffprobe):
                self._verify(binary)
            logger.info("FFmpeg video processor initialized")

    @staticmethod
    def _verify(binary: str) -> None:
        try:
            result = subprocess.run(
                [binary, "-version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except FileNotFoundError:
            raise RuntimeError(
                f"{binary} not found. Install with: apt-get install ffmpeg"
            )
        if result.returncode != 0:
            raise RuntimeError(f"{binary} not working properly")

    async def probe_geometry(self, path: PathLike) -> VideoGeometry:
        """
        Read the first video stream's dimensions.

        ``-select_streams v:0`` keeps audio and data streams out of the
        list, so an audio-only file yields an empty stream list.
        """
        cmd = [
            self._ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-select_streams", "v:0",
            str(path),
        ]

        try:
            stdout = await self._run(cmd, self._probe_timeout)
        except ToolFailedError as e:
            raise ProbeFailedError(str(e))

        try:
            info = json.loads(stdout)
        except ValueError as e:
            raise ProbeFailedError(f"FFprobe returned invalid JSON: {e}")

        streams = info.get("streams") or []
        if not streams:
            raise NoStreamFoundError("No streams found")

        stream = streams[0]
        try:
            width = int(stream.get("width") or 0)
            height = int(stream.get("height") or 0)
        except (TypeError, ValueError) as e:
            raise ProbeFailedError(f"Unreadable stream dimensions: {e}")

        if width <= 0 or height <= 0:
            raise ProbeFailedError(f"Stream reports no usable dimensions ({width}x{height})")

        geometry = VideoGeometry(width=width, height=height)
        logger.debug("Probed video", extra={"resolution": geometry.resolution})
        return geometry

    async def remux_for_fast_start(self, path: PathLike) -> Path:
        """
        Copy streams into a new MP4 with ``-movflags faststart``.

        ``-c copy`` means no re-encode; codec problems surface as a
        non-zero ffmpeg exit, reported as RemuxFailedError.
        """
        output_path = fast_start_output_path(path)
        cmd = [
            self._ffmpeg,
            "-y",
            "-i", str(path),
            "-c", "copy",
            "-movflags", "faststart",
            "-f", "mp4",
            str(output_path),
        ]

        try:
            await self._run(cmd, self._remux_timeout)
        except ToolFailedError as e:
            raise RemuxFailedError(str(e))

        return output_path

    async def _run(self, cmd: list[str], timeout: float) -> bytes:
        """Run a tool to completion and return its stdout."""
        tool = Path(cmd[0]).name
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolFailedError(f"{tool} could not be started: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise ToolFailedError(f"{tool} timed out after {timeout}s")
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if process.returncode != 0:
            # stderr stays in the server log; errors only carry the exit code
            logger.warning(
                "Media tool failed",
                extra={
                    "tool": tool,
                    "returncode": process.returncode,
                    "stderr": stderr.decode("utf-8", "replace")[-2000:],
                },
            )
            raise ToolFailedError(f"{tool} exited with status {process.returncode}")

        return stdout

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


class MockVideoProcessor:
    """
    In-process stand-in for local development without FFmpeg.

    Reports fixed geometry and "remuxes" by copying the file byte for byte.
    """

    def __init__(self, width: int = 1920, height: int = 1080):
        self._geometry = VideoGeometry(width=width, height=height)
        logger.info("Initialized mock video processor")

    async def probe_geometry(self, path: PathLike) -> VideoGeometry:
        if not Path(path).exists():
            raise ProbeFailedError(f"No such file: {path}")
        return self._geometry

    async def remux_for_fast_start(self, path: PathLike) -> Path:
        output_path = fast_start_output_path(path)
        try:
            await asyncio.to_thread(shutil.copyfile, path, output_path)
        except OSError as e:
            raise RemuxFailedError(f"Mock remux failed: {e}")
        return output_path


def create_video_processor(
    mock_mode: bool = False,
    ffmpeg_path: str = "ffmpeg",
    ffprobe_path: str = "ffprobe",
    probe_timeout_seconds: float = 60.0,
    remux_timeout_seconds: float = 600.0,
) -> VideoProcessor:
    """
    Factory function for video processor.

    Args:
        mock_mode: If True, return mock processor (no FFmpeg required)

    Returns:
        VideoProcessor implementation
    """
    if mock_mode:
        return MockVideoProcessor()

    return FFmpegVideoProcessor(
        ffmpeg_path=ffmpeg_path,
        ffprobe_path=ffprobe_path,
        probe_timeout_seconds=probe_timeout_seconds,
        remux_timeout_seconds=remux_timeout_seconds,
    )
