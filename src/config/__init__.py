"""
Application configuration.

Settings come from environment variables (or .env) via pydantic-settings.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
