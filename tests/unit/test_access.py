"""
Unit tests for signed read access.
"""

import asyncio
from uuid import uuid4

import pytest

from src.core.videos.access import generate_signed_url, sign_video, sign_videos
from src.core.videos.errors import InvalidReferenceError, SigningFailedError
from src.core.videos.models import VideoRecord


class RecordingSigner:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    async def get_presigned_url(self, bucket, key, expiry_seconds=3600):
        self.calls.append((bucket, key, expiry_seconds))
        if self.error:
            raise self.error
        return f"https://{bucket}.signed.test/{key}?X-Amz-Expires={expiry_seconds}"


class TestGenerateSignedUrl:

    def test_signs_bucket_and_key_from_reference(self):
        signer = RecordingSigner()

        url = asyncio.run(generate_signed_url(signer, "videos,landscape/abc.mp4", 600))

        assert url == "https://videos.signed.test/landscape/abc.mp4?X-Amz-Expires=600"
        assert signer.calls == [("videos", "landscape/abc.mp4", 600)]

    @pytest.mark.parametrize("raw", ["", "videos", "a,b,c", ",key.mp4", "videos,"])
    def test_malformed_reference_never_reaches_signer(self, raw):
        signer = RecordingSigner()

        with pytest.raises(InvalidReferenceError):
            asyncio.run(generate_signed_url(signer, raw))

        assert signer.calls == []

    def test_signer_failure_is_wrapped(self):
        signer = RecordingSigner(error=RuntimeError("credentials expired"))

        with pytest.raises(SigningFailedError) as exc_info:
            asyncio.run(generate_signed_url(signer, "videos,other/x.mp4"))

        assert exc_info.value.safe_message == "Couldn't generate video URL"

    def test_expiry_must_be_positive(self):
        with pytest.raises(ValueError):
            asyncio.run(generate_signed_url(RecordingSigner(), "videos,other/x.mp4", 0))


class TestSignVideo:

    def test_record_without_video_is_returned_as_is(self):
        signer = RecordingSigner()
        record = VideoRecord(user_id=uuid4(), title="Draft")

        assert asyncio.run(sign_video(record, signer)) is record
        assert signer.calls == []

    def test_signed_copy_leaves_stored_reference_alone(self):
        record = VideoRecord(user_id=uuid4(), title="Demo", video_url="videos,portrait/p.mp4")

        signed = asyncio.run(sign_video(record, RecordingSigner()))

        assert signed.video_url.startswith("https://videos.signed.test/portrait/p.mp4")
        assert record.video_url == "videos,portrait/p.mp4"

    def test_sign_videos_keeps_order(self):
        user_id = uuid4()
        records = [
            VideoRecord(user_id=user_id, title="one", video_url="videos,landscape/1.mp4"),
            VideoRecord(user_id=user_id, title="two"),
            VideoRecord(user_id=user_id, title="three", video_url="videos,portrait/3.mp4"),
        ]

        signed = asyncio.run(sign_videos(records, RecordingSigner(), expires_in=30))

        assert [r.title for r in signed] == ["one", "two", "three"]
        assert signed[1].video_url is None
        assert signed[2].video_url.endswith("X-Amz-Expires=30")
