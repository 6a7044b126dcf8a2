"""Modality Ingest - Imaging acquisition notification reconciliation

FastAPI application: webhook receiver, probes and Prometheus metrics.
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, make_asgi_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.logging import get_logger, setup_logging

setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

logger = get_logger(__name__)

HTTP_REQUESTS = Counter(
    "modality_ingest_requests_total",
    "HTTP requests handled",
    ["method", "route", "status"],
)
HTTP_LATENCY = Histogram(
    "modality_ingest_request_latency_seconds",
    "HTTP request latency",
    ["method", "route"],
)


def route_template(request: Request) -> str:
    """Matched route path, so identifiers in URLs never reach logs or labels."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def database_reachable(session_maker: async_sessionmaker[AsyncSession]) -> bool:
    try:
        async with session_maker() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("database_unreachable", error=str(e))
        return False
    return True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Bind the shared engine on startup and dispose of it on shutdown."""
    from app.models.base import async_session_maker, engine

    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment,
        database=engine.url.render_as_string(hide_password=True),
    )
    app.state.db_engine = engine
    app.state.db_session_maker = async_session_maker

    yield

    await app.state.db_engine.dispose()
    logger.info("application_stopped")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description=(
            "Receives acquisition notifications from modalities, DICOM routers and "
            "the RIS and reconciles them into patients, studies, series and images, "
            "with one pending report per study. Deliveries are idempotent: a "
            "retried notification never creates duplicates."
        ),
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def observe_requests(request: Request, call_next) -> Response:
        """Time each request, count it and tag the response with a request id."""
        request_id = uuid.uuid4().hex[:8]
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        route = route_template(request)
        HTTP_REQUESTS.labels(method=request.method, route=route, status=response.status_code).inc()
        HTTP_LATENCY.labels(method=request.method, route=route).observe(elapsed)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=route,
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
        )
        return response

    app.mount("/metrics", make_asgi_app())
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Liveness probe."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        }

    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness probe, checks database connectivity."""
        session_maker = getattr(request.app.state, "db_session_maker", None)
        database_ok = session_maker is not None and await database_reachable(session_maker)
        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={"ready": database_ok, "checks": {"database": database_ok}},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            path=route_template(request),
            method=request.method,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_level="debug" if settings.debug else "info",
    )
