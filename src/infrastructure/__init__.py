"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- video: ffprobe/ffmpeg subprocesses
- storage: Object storage (R2/S3)
- snowflake: Video record persistence
"""
