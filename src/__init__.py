"""
ReelStore - video upload and signed delivery service.

This package contains the complete application:
- core: Framework-agnostic upload pipeline, key builder and signed access
- infrastructure: FFmpeg tools, object storage and database integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
