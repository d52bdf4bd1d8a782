"""Request-level limits applied in front of every route."""

from __future__ import annotations

import asyncio
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Bound the time spent reading, handling and answering a request.

    A request still running when the deadline expires is cancelled and
    answered with 503.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float = 10.0) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except TimeoutError:
            logger.warning(
                "%s %s exceeded the %.1fs request deadline",
                request.method,
                request.url.path,
                self.timeout_seconds,
            )
            return JSONResponse(status_code=503, content={"error": "Request timed out"})
