"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .videos import SnowflakeConfig, VideoRepository

__all__ = ["SnowflakeConfig", "VideoRepository"]
