"""
Errors raised by the video upload and access flows.

Every error carries two messages:
- detail: internal diagnostic (may mention paths or tool output), logged only
- safe_message: fixed, human-readable text that is safe to show the user

The API layer maps each class to an HTTP status via ``status_code``.
"""

from typing import Optional


class VideoServiceError(Exception):
    """Base class for all video service failures."""

    status_code: int = 500
    safe_message: str = "Internal server error"

    def __init__(self, detail: str = "", safe_message: Optional[str] = None) -> None:
        self.detail = detail or self.safe_message
        if safe_message is not None:
            self.safe_message = safe_message
        super().__init__(self.detail)


class UnauthorizedError(VideoServiceError):
    status_code = 401
    safe_message = "Unauthorized"


class VideoNotFoundError(VideoServiceError):
    """Video record is missing or not owned by the caller."""
    status_code = 404
    safe_message = "Video not found"


class InvalidInputError(VideoServiceError):
    status_code = 400
    safe_message = "Invalid request"


class UnsupportedMediaTypeError(InvalidInputError):
    safe_message = "Only mp4 allowed"


class PayloadTooLargeError(VideoServiceError):
    status_code = 413
    safe_message = "Video too large"


class ProbeFailedError(VideoServiceError):
    safe_message = "Couldn't get video orientation"


class NoStreamFoundError(VideoServiceError):
    status_code = 400
    safe_message = "Uploaded file contains no video stream"


class RemuxFailedError(VideoServiceError):
    safe_message = "Couldn't process video for fast start"


class UploadFailedError(VideoServiceError):
    safe_message = "Couldn't upload video"


class PersistenceFailedError(VideoServiceError):
    safe_message = "Couldn't update video"


class InvalidReferenceError(VideoServiceError):
    safe_message = "Stored video reference is invalid"


class SigningFailedError(VideoServiceError):
    safe_message = "Couldn't generate video URL"
