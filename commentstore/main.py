"""
Comment Store FastAPI application.
Builds the app: logging, CORS, rate limiting, error bodies, the v1 routes and health probes.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import DBAPIError, OperationalError

from commentstore.api.v1.router import api_router
from commentstore.core.config import settings
from commentstore.core.exceptions import StorageUnavailableException, register_exception_handlers
from commentstore.core.limiter import limiter
from commentstore.core.logging_config import configure_logging
from commentstore.db.session import engine, ping

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    logger.info(
        "Starting %s v%s (new comments default to %s)",
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.default_moderation_status.name,
    )
    yield
    logger.info("Shutting down %s", settings.APP_NAME)
    await engine.dispose()


def _add_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Only comment submission carries a limit; see api/v1/comments.py
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


def _add_health_routes(app: FastAPI) -> None:
    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def liveness() -> dict[str, str]:
        return {"status": "ok", "service": settings.APP_NAME}

    @app.get("/health/ready", tags=["Health"], include_in_schema=False)
    async def readiness() -> dict[str, str]:
        """503 until the comment store answers a query."""
        try:
            await ping(engine)
        except (OperationalError, DBAPIError, OSError, TimeoutError) as exc:
            logger.warning("Readiness check failed: %s", exc)
            raise StorageUnavailableException() from exc
        return {"status": "ready", "database": engine.dialect.name}


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Threaded, moderated comments for content items across sites, "
            "features and modules."
        ),
        lifespan=lifespan,
    )

    _add_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_STR)
    _add_health_routes(app)
    return app


app = create_application()
