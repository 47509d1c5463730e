from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """
    Answer 504 when a handler has not produced a response within `timeout`
    seconds. Background tasks (SMS dispatch) run after the response and are
    not counted.

    A sync handler is not cancelled: it keeps running in the threadpool and
    may still commit after the 504, with its notifications dropped. The DB
    read/write timeouts default below this limit (see `db._build_pymysql_kwargs`)
    so a stalled statement fails and rolls back first.
    """

    def __init__(self, app: ASGIApp, timeout: float) -> None:
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("request timed out after %ss: %s %s", self.timeout, request.method, request.url.path)
            return JSONResponse(status_code=504, content={"detail": "Request timed out"})
