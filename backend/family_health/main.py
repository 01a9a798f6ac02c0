from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from family_health.api.router import api_router
from family_health.config import settings
from family_health.middleware.rate_limit import (
    RATE_LIMIT_ERROR,
    RateLimitExceeded,
    RateLimitSweeper,
    build_rate_limiter,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = RateLimitSweeper(
        app.state.rate_limiter.store,
        interval_seconds=settings.rate_limit_sweep_interval_seconds,
    )
    async with sweeper:
        logger.info("Rate limit sweeper started (every %ss)", settings.rate_limit_sweep_interval_seconds)
        yield
    logger.info("Rate limit sweeper stopped")


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": RATE_LIMIT_ERROR,
            "message": exc.message,
            "retryAfter": exc.retry_after_seconds,
        },
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Family Health Tracker API",
        description="Family health records: members, vitals, reports and documents",
        version="0.1.0",
        docs_url="/api/docs" if settings.app_env == "development" else None,
        redoc_url="/api/redoc" if settings.app_env == "development" else None,
        lifespan=lifespan,
    )
    app.state.rate_limiter = build_rate_limiter(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After"],
    )

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.include_router(api_router)

    @app.get("/api/v1/health")
    async def health_check():
        return {"status": "healthy", "version": "0.1.0"}

    return app


app = create_app()
