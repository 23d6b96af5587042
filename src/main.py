"""
ReelStore API application.

Run locally with:
    uvicorn src.main:app --reload

``create_app`` builds a fresh application so tests can construct one and
override its dependencies without touching the module-level instance.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.middleware import MULTIPART_OVERHEAD_BYTES, BodySizeLimitMiddleware
from .api.routes import health, videos
from .config.settings import Settings, get_settings
from .core.videos.errors import VideoServiceError

logging.basicConfig(
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


def _prepare_temp_dir(settings: Settings) -> None:
    """Uploads are buffered here; mkstemp fails if the directory is absent."""
    if settings.upload_temp_dir:
        Path(settings.upload_temp_dir).mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    _prepare_temp_dir(settings)

    logger.info(
        "ReelStore API starting",
        extra={
            "version": __version__,
            "bucket": settings.r2_bucket_name,
            "max_upload_bytes": settings.max_upload_bytes,
            "mock_backends": [
                name for name, mocked in (
                    ("snowflake", settings.snowflake_mock_mode),
                    ("r2", settings.r2_mock_mode),
                    ("media", settings.media_mock_mode),
                ) if mocked
            ],
        }
    )

    missing = settings.validate_required_fields()
    if missing:
        logger.error("Configuration incomplete", extra={"missing_fields": missing})

    yield

    logger.info("ReelStore API stopped")


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(VideoServiceError)
    async def handle_video_service_error(request: Request, exc: VideoServiceError):
        """
        Render domain errors with their safe message only.

        ``exc.detail`` may contain file paths or tool output; it is logged
        here and never returned.
        """
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request failed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "error_type": type(exc).__name__,
                "error": exc.detail,
            },
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.safe_message})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            extra={"method": request.method, "path": request.url.path},
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Upload MP4 videos and watch them back through signed links.

        1. `POST /api/v1/videos` creates a record
        2. `POST /api/v1/videos/{video_id}/upload` probes orientation, remuxes
           for fast start and stores the file under `<orientation>/<token>.mp4`
        3. `GET /api/v1/videos/{video_id}` returns the record with a signed,
           expiring `video_url`

        Every call needs `X-API-Key` plus the caller's UUID in `X-User-Id`.
        """,
        lifespan=lifespan,
    )

    # Starlette runs the last added middleware outermost; CORS wraps the body cap.
    app.add_middleware(
        BodySizeLimitMiddleware,
        max_body_bytes=settings.max_upload_bytes + MULTIPART_OVERHEAD_BYTES,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(videos.router, prefix="/api/v1/videos", tags=["Videos"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": settings.api_title, "version": __version__, "docs": app.docs_url}

    _register_error_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=get_settings().log_level.lower(),
    )
