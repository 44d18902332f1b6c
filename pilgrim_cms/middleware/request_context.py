"""Request context middleware: request id, timing and the structured access log.

- Generate or propagate ``X-Request-ID`` header
- Measure request duration (``X-Response-Time``)
- Log every request/response as structured JSON
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.logging_config import request_id_var

logger = logging.getLogger(__name__)

# Probes and static objects are not worth an access-log line at INFO.
_QUIET_PREFIXES = ("/health", "/files/")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Single middleware handling request-id, timing and logging."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request_id_var.set(rid)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = rid
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        path = request.url.path
        log = logger.debug if path.startswith(_QUIET_PREFIXES) else logger.info
        log(
            f"{request.method} {path} {response.status_code}",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        return response
