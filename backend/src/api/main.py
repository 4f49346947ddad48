"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.dependencies import build_services
from api.errors import install_error_handlers
from api.routers import events, feed, follows, health, registrations, users
from core.config import Settings, get_settings
from core.rate_limit_config import RateLimitExceededError, RateLimitResult

logger = logging.getLogger(__name__)

# Sent on every response: HTTPS only, no MIME sniffing, never framed
SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """X-RateLimit-* headers describing the caller's current window."""
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Build the service container at startup and release it at shutdown."""
    services = build_services(get_settings())
    # Without Redis the app still serves, uncached and without rate limits
    await services.redis.connect()
    app.state.services = services
    logger.info("services_started")

    yield

    await services.close()
    logger.info("services_stopped")


class ResponseHeadersMiddleware(BaseHTTPMiddleware):
    """
    Stamp security headers on every response, plus rate limit headers when the
    auth dependency recorded a window for this request.

    Throttled (429) responses carry their own headers from the exception handler.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        result = getattr(request.state, "rate_limit", None)
        if result is not None:
            response.headers.update(rate_limit_headers(result))
        return response


async def rate_limited_handler(_request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """429 with the standard error body and Retry-After."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": {
                "code": "rate_limited",
                "message": "Rate limit exceeded. Please try again later.",
            },
        },
        headers={"Retry-After": str(exc.result.retry_after), **rate_limit_headers(exc.result)},
    )


def create_app(settings: Settings) -> FastAPI:
    """Assemble the application: handlers, middleware, and routers."""
    application = FastAPI(
        title="ThrottleMeet API",
        description="Follow graph, event registrations, and feeds for an automotive community.",
        version="0.1.0",
        lifespan=lifespan,
    )
    install_error_handlers(application)
    application.add_exception_handler(RateLimitExceededError, rate_limited_handler)

    application.add_middleware(ResponseHeadersMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module in (health, users, follows, registrations, events, feed):
        application.include_router(module.router)
    return application


app = create_app(get_settings())
