"""Exception handler for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import InfographicsException

logger = logging.getLogger(__name__)


async def infographics_exception_handler(request: Request, exc: InfographicsException) -> JSONResponse:
    """
    Convert an InfographicsException into a ``{error, message, details}`` body.

    Client errors (4xx) are logged at INFO, everything else at ERROR.

    Args:
        request: FastAPI request object
        exc: InfographicsException instance

    Returns:
        JSONResponse with the exception's status code
    """
    log = logger.info if exc.status_code < 500 else logger.error
    log(
        f"{exc.error_code.value}: {exc.message}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )
