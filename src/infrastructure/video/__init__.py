"""
Video processing infrastructure.

Wraps the external media tools behind the VideoProcessor protocol:
- FFprobe for stream geometry
- FFmpeg for fast-start remuxing (stream copy, no re-encode)
"""

from .processor import (
    FFmpegVideoProcessor,
    MockVideoProcessor,
    VideoProcessor,
    create_video_processor,
    fast_start_output_path,
)

__all__ = [
    "FFmpegVideoProcessor",
    "MockVideoProcessor",
    "VideoProcessor",
    "create_video_processor",
    "fast_start_output_path",
]
