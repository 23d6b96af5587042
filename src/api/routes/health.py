"""
Liveness and readiness probes.

/health answers as long as the process serves requests. /health/ready also
checks what an upload needs: credentials for the real backends, the media
binaries, and a writable directory to buffer into.
"""

import logging
import os
import shutil
import tempfile
from typing import Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...config.settings import Settings
from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class LivenessResponse(BaseModel):
    status: str
    version: str
    mocked: list[str] = []


class Check(BaseModel):
    name: str
    ok: bool
    error: Optional[str] = None


class ReadinessResponse(BaseModel):
    ready: bool
    version: str
    checks: list[Check]


def _mocked_backends(settings: Settings) -> list[str]:
    flags = {
        "snowflake": settings.snowflake_mock_mode,
        "r2": settings.r2_mock_mode,
        "media": settings.media_mock_mode,
    }
    return [name for name, mocked in flags.items() if mocked]


def _check_configuration(settings: Settings) -> Check:
    missing = settings.validate_required_fields()
    if missing:
        return Check(name="configuration", ok=False, error=f"Missing: {', '.join(missing)}")
    return Check(name="configuration", ok=True)


def _check_media_tools(settings: Settings) -> Check:
    if settings.media_mock_mode:
        return Check(name="media_tools", ok=True)
    absent = [
        tool for tool in (settings.ffmpeg_path, settings.ffprobe_path)
        if shutil.which(tool) is None
    ]
    if absent:
        return Check(name="media_tools", ok=False, error=f"Not found: {', '.join(absent)}")
    return Check(name="media_tools", ok=True)


def _check_temp_dir(settings: Settings) -> Check:
    directory = settings.upload_temp_dir or tempfile.gettempdir()
    if not os.path.isdir(directory) or not os.access(directory, os.W_OK):
        return Check(name="temp_dir", ok=False, error=f"{directory} is not writable")
    return Check(name="temp_dir", ok=True)


@router.get(
    "",
    response_model=LivenessResponse,
    summary="Liveness probe",
)
async def health_check(settings: SettingsDep) -> LivenessResponse:
    return LivenessResponse(
        status="ok",
        version=__version__,
        mocked=_mocked_backends(settings),
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="200 when uploads can be processed, 503 otherwise.",
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
async def readiness_check(settings: SettingsDep, response: Response) -> ReadinessResponse:
    checks = [
        _check_configuration(settings),
        _check_media_tools(settings),
        _check_temp_dir(settings),
    ]
    ready = all(check.ok for check in checks)

    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Not ready",
            extra={"failed": [c.model_dump() for c in checks if not c.ok]}
        )

    return ReadinessResponse(ready=ready, version=__version__, checks=checks)
