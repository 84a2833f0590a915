from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mediajobs import __version__
from mediajobs.api.routers import admin_router, health_router, jobs_router
from mediajobs.core.config import get_settings
from mediajobs.core.errors import (
    AlreadyProcessing,
    DuplicateId,
    InvalidInput,
    MediaJobsError,
    NotFound,
    PersistenceError,
    Unauthorized,
)
from mediajobs.services.lifecycle import LifecycleService

logger = structlog.get_logger()

ERROR_STATUS = {
    InvalidInput: 400,
    Unauthorized: 403,
    NotFound: 404,
    AlreadyProcessing: 409,
    DuplicateId: 409,
    PersistenceError: 503,
}


def create_app(service_factory: Callable[[], LifecycleService] | None = None) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        lifecycle = service_factory() if service_factory else LifecycleService.build(settings)
        lifecycle.start()
        app.state.lifecycle = lifecycle
        try:
            yield
        finally:
            lifecycle.shutdown()

    app = FastAPI(
        title="Media Jobs API",
        description="""
## Media job lifecycle

Submit media assets, follow their processing and fetch the produced artifacts.

### Flow

1. Submit a job with `POST /jobs` (status `pending`)
2. Poll `GET /jobs/{id}` until the status is `completed` or `failed`
3. Use the returned `share_link`, `thumbnails` and `subtitles_url`
4. Reprocess with new parameters via `POST /jobs/{id}/reprocess`

Caller identity comes from the `X-User-Id` and `X-User-Role` headers set by the gateway.
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "Health", "description": "Health check endpoints"},
            {"name": "Jobs", "description": "Submit, list, reprocess and delete jobs"},
            {"name": "Admin", "description": "Statistics and failure reports"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.exception_handler(MediaJobsError)
    async def media_jobs_exception_handler(request: Request, exc: MediaJobsError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 500)
        logger.info("request_rejected", path=request.url.path, error=exc.message, status=status_code)
        content = {"detail": exc.message}
        if exc.job_id is not None:
            content["job_id"] = exc.job_id
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(health_router)
    app.include_router(jobs_router, prefix=settings.api_prefix)
    app.include_router(admin_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"service": "mediajobs", "version": __version__, "docs": "/docs"}

    return app


app = create_app()
