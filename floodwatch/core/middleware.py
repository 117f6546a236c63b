"""
Request middleware: correlation IDs and one access line per API call.

Every response carries ``X-Request-ID`` (echoed from the caller when
supplied) so a report submission can be traced through the processing pass
it triggered. Health and docs routes are not logged.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from floodwatch.core.logging_config import bind_request_id, reset_request_id

logger = logging.getLogger(__name__)

_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        token = bind_request_id(request_id)
        start = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "%s %s failed", request.method, path,
                    extra={"duration_ms": (time.perf_counter() - start) * 1000, "status_code": 500},
                )
                raise

            duration_ms = (time.perf_counter() - start) * 1000
            response.headers["X-Request-ID"] = request_id

            if not path.startswith(_QUIET_PREFIXES):
                level = logging.WARNING if response.status_code >= 400 else logging.INFO
                logger.log(
                    level,
                    "%s %s → %d (%.1fms)",
                    request.method, path, response.status_code, duration_ms,
                    extra={"duration_ms": duration_ms, "status_code": response.status_code},
                )
            return response
        finally:
            reset_request_id(token)
