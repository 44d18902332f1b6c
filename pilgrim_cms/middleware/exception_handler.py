"""Exception handler middleware for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import PortalException

logger = logging.getLogger(__name__)


async def portal_exception_handler(request: Request, exc: PortalException) -> JSONResponse:
    """
    Handle portal exceptions and return structured JSON responses.

    Client errors (4xx) are logged as warnings, everything else as errors.

    Args:
        request: FastAPI request object
        exc: PortalException instance

    Returns:
        JSONResponse with error details
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"PortalException: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
