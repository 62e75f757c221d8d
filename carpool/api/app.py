"""
FastAPI application factory.

* Registers routes for bookings, confirmations, rides and admin.
* Closes the database pool and Redis connections on shutdown.
* Applies rate-limiting and request-logging middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.middleware import RequestLogMiddleware, limiter
from carpool.api.routes import admin, bookings, confirmations, rides
from carpool.api.schemas import failure_response
from carpool.domain.errors import ErrorCode
from carpool.domain.results import Failure
from carpool.infrastructure.database import engine
from carpool.infrastructure.redis_client import close_redis

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await engine.dispose()
    await close_redis()


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed input gets the same error envelope as business failures."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    message = "; ".join(problems) or "Invalid request"
    return failure_response(Failure(ErrorCode.VALIDATION_ERROR, message))


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Booking & Settlement API",
        description=(
            "Books seats on shared rides against a closed-loop credit "
            "balance and pays drivers exactly once after passengers "
            "confirm the ride took place."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(RequestLogMiddleware)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(confirmations.router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
