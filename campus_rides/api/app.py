"""
FastAPI application factory.

* Registers routes for rides and admin.
* Builds services (repositories, geo resolver, locks) in the lifespan and
  closes their connections on shutdown, unless the caller injects them.
* Maps ``LifecycleError`` kinds to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from campus_rides.api.middleware import limiter
from campus_rides.api.routes import admin, rides
from campus_rides.config import settings
from campus_rides.domain.enums import ErrorKind
from campus_rides.domain.errors import LifecycleError
from campus_rides.services.container import Services, build_services

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


async def _lifecycle_error_handler(request: Request, exc: LifecycleError):
    status = HTTP_STATUS.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "kind": exc.kind.value},
    )


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build services from settings on startup; close them on shutdown."""
        if services is not None:
            yield
            return
        app.state.services = await build_services(settings)
        logger.info(
            "Services ready (storage=%s, geo=%s, locks=%s)",
            settings.storage_backend,
            settings.geo_backend,
            settings.lock_backend,
        )
        try:
            yield
        finally:
            await app.state.services.aclose()

    app = FastAPI(
        title="Campus Rides API",
        description=(
            "Student drivers post point-to-point rides, passengers request "
            "the seat, and the driver takes the ride through start, arrival, "
            "trip and completion with distance-based fares."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(LifecycleError, _lifecycle_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
