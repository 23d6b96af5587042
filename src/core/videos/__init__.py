"""
Video upload and access logic.

Contains the domain models, the object key builder, the upload pipeline
state machine and the signed-access helpers.
"""

from .access import generate_signed_url, sign_video, sign_videos
from .errors import (
    InvalidInputError,
    InvalidReferenceError,
    NoStreamFoundError,
    PayloadTooLargeError,
    PersistenceFailedError,
    ProbeFailedError,
    RemuxFailedError,
    SigningFailedError,
    UnauthorizedError,
    UnsupportedMediaTypeError,
    UploadFailedError,
    VideoNotFoundError,
    VideoServiceError,
)
from .keys import build_object_key, extension_for, parse_media_type
from .models import Orientation, StoredVideoReference, VideoGeometry, VideoRecord
from .pipeline import PipelineState, UploadJob, UploadPipeline
from .ports import StorageClient, VideoProcessor

__all__ = [
    "generate_signed_url",
    "sign_video",
    "sign_videos",
    "InvalidInputError",
    "InvalidReferenceError",
    "NoStreamFoundError",
    "PayloadTooLargeError",
    "PersistenceFailedError",
    "ProbeFailedError",
    "RemuxFailedError",
    "SigningFailedError",
    "UnauthorizedError",
    "UnsupportedMediaTypeError",
    "UploadFailedError",
    "VideoNotFoundError",
    "VideoServiceError",
    "build_object_key",
    "extension_for",
    "parse_media_type",
    "Orientation",
    "StoredVideoReference",
    "VideoGeometry",
    "VideoRecord",
    "PipelineState",
    "UploadJob",
    "UploadPipeline",
    "StorageClient",
    "VideoProcessor",
]
