"""Translation of service-layer errors into HTTP responses."""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from services.exceptions import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ServiceError,
    TransientError,
)

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying a transient failure
TRANSIENT_RETRY_AFTER_SECONDS = 1


def http_error_from_service(err: ServiceError) -> HTTPException:
    """Map a ServiceError to an HTTPException with a {code, message} detail."""
    headers = None
    if isinstance(err, NotFoundError):
        status = 404
    elif isinstance(err, ConflictError):
        status = 409
    elif isinstance(err, InvalidOperationError):
        status = 400
    elif isinstance(err, TransientError):
        status = 503
        headers = {"Retry-After": str(TRANSIENT_RETRY_AFTER_SECONDS)}
    else:
        status = 500

    return HTTPException(
        status_code=status,
        detail={"code": err.code, "message": err.message},
        headers=headers,
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the ServiceError handler so routers can let service errors propagate."""

    @app.exception_handler(ServiceError)
    async def service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
        http_exc = http_error_from_service(exc)
        if http_exc.status_code >= 500:
            logger.warning(
                "service_error",
                extra={"code": exc.code, "error_message": exc.message},
            )
        return JSONResponse(
            status_code=http_exc.status_code,
            content={"detail": http_exc.detail},
            headers=http_exc.headers,
        )
