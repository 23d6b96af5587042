"""
Request body cap applied before FastAPI parses forms.

FastAPI reads a multipart body in full (spooling files to disk) before any
route dependency or handler runs, so a size check inside the upload
pipeline only fires after the whole upload has been received. This
middleware rejects oversized bodies while they are still arriving.
"""

import logging

from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.videos.errors import PayloadTooLargeError

logger = logging.getLogger(__name__)

# Room for multipart boundaries and part headers around the video itself.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


class BodySizeLimitMiddleware:
    """
    Reject HTTP requests whose body exceeds ``max_body_bytes``.

    A declared Content-Length over the limit is answered with 413 without
    reading the body. Otherwise received bytes are counted and the read
    that crosses the limit raises a 413 ``HTTPException``, which FastAPI
    propagates out of body parsing unchanged.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = self._declared_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            logger.info(
                "Request body rejected by declared length",
                extra={"path": scope.get("path"), "content_length": declared},
            )
            response = JSONResponse(
                status_code=PayloadTooLargeError.status_code,
                content={"detail": PayloadTooLargeError.safe_message},
            )
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    logger.info(
                        "Request body exceeded limit while streaming",
                        extra={"path": scope.get("path"), "received": received},
                    )
                    raise HTTPException(
                        status_code=PayloadTooLargeError.status_code,
                        detail=PayloadTooLargeError.safe_message,
                    )
            return message

        await self.app(scope, limited_receive, send)

    @staticmethod
    def _declared_length(scope: Scope):
        for name, value in scope.get("headers", []):
            if name == b"content-length":
                try:
                    return int(value)
                except ValueError:
                    return None
        return None
