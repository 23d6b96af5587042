"""
Domain models for video storage.

These models have no dependencies on FastAPI, boto3 or Snowflake. The
orientation rule and the stored reference encoding live here because both
the upload path and the read path must agree on them exactly.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from fractions import Fraction
from typing import Optional
from uuid import UUID, uuid4

from .errors import InvalidReferenceError, ProbeFailedError


REFERENCE_SEPARATOR = ","


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Orientation(Enum):
    """Orientation bucket used as the first segment of every object key."""
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"

    @classmethod
    def from_dimensions(
        cls,
        width: int,
        height: int,
        exact: bool = False,
    ) -> "Orientation":
        """
        Classify decoded stream geometry.

        The default rule compares ``width // height`` against ``16 // 9`` (1)
        and ``9 // 16`` (0). Integer division collapses every ratio in [1, 2)
        into landscape (4:3 and square included) and every ratio below 1 into
        portrait. This is a known defect, kept because every key already in
        storage was produced by it.

        With ``exact=True`` the rational ratio is compared against 16:9 and
        9:16, so only true widescreen geometry lands in landscape/portrait.
        """
        if width <= 0 or height <= 0:
            raise ProbeFailedError(f"Invalid stream dimensions {width}x{height}")

        if exact:
            ratio = Fraction(width, height)
            if ratio == Fraction(16, 9):
                return cls.LANDSCAPE
            if ratio == Fraction(9, 16):
                return cls.PORTRAIT
            return cls.OTHER

        ratio = width // height
        if ratio == 16 // 9:
            return cls.LANDSCAPE
        if ratio == 9 // 16:
            return cls.PORTRAIT
        return cls.OTHER


@dataclass(frozen=True)
class VideoGeometry:
    """Width and height of the first video stream, as reported by the prober."""
    width: int
    height: int

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class StoredVideoReference:
    """
    Where an uploaded video lives in the object store.

    At rest this is a single ``<bucket>,<key>`` string. The encoding has no
    escaping, so a bucket containing a comma cannot be represented; such
    buckets are rejected at construction.
    """
    bucket: str
    key: str

    def __post_init__(self) -> None:
        if not self.bucket or not self.key:
            raise InvalidReferenceError("Bucket and key must both be non-empty")
        if REFERENCE_SEPARATOR in self.bucket or REFERENCE_SEPARATOR in self.key:
            raise InvalidReferenceError(
                f"Bucket and key must not contain {REFERENCE_SEPARATOR!r}"
            )

    def encode(self) -> str:
        return f"{self.bucket}{REFERENCE_SEPARATOR}{self.key}"

    @classmethod
    def parse(cls, raw: str) -> "StoredVideoReference":
        parts = raw.split(REFERENCE_SEPARATOR)
        if len(parts) != 2:
            raise InvalidReferenceError(
                f"Expected 2 comma-separated parts, got {len(parts)}"
            )
        return cls(bucket=parts[0], key=parts[1])


@dataclass
class VideoRecord:
    """
    A user's video as held by the persistence layer.

    ``video_url`` holds the encoded StoredVideoReference once an upload has
    been committed. On the read path it is swapped for a signed URL in a
    copy of the record, never in the stored one.
    """
    user_id: UUID
    title: str
    description: str = ""
    id: UUID = field(default_factory=uuid4)
    video_url: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("Video title cannot be empty")

    @property
    def has_video(self) -> bool:
        return self.video_url is not None

    def attach_reference(self, reference: StoredVideoReference) -> None:
        """Record a committed upload."""
        self.video_url = reference.encode()
        self.updated_at = _utcnow()

    def with_video_url(self, url: str) -> "VideoRecord":
        return replace(self, video_url=url)
