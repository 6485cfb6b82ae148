"""
Request body size limit

Counts body bytes as they arrive, so chunked requests without a
Content-Length header are capped as well. A declared length over the cap
is answered before the body is read.
"""
import logging
from typing import Callable

from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from codevault.api.exception_handlers import error_response
from codevault.api.helpers import UPLOAD_REJECTED_MESSAGE

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    """
    Pure ASGI middleware rejecting request bodies larger than max_bytes().

    max_bytes is a callable so the limit follows the current settings.
    """

    def __init__(self, app: ASGIApp, max_bytes: Callable[[], int]):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = self.max_bytes()
        headers = dict(scope.get("headers") or [])
        declared = headers.get(b"content-length")
        if declared is not None:
            try:
                too_large = int(declared) > limit
            except ValueError:
                too_large = True
            if too_large:
                logger.warning(f"Rejected {scope['path']}: declared body {declared!r} over {limit} bytes")
                response = error_response(400, UPLOAD_REJECTED_MESSAGE)
                await response(scope, receive, send)
                return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    logger.warning(f"Rejected {scope['path']}: body exceeded {limit} bytes")
                    raise StarletteHTTPException(status_code=400, detail=UPLOAD_REJECTED_MESSAGE)
            return message

        await self.app(scope, limited_receive, send)
