from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from jobengine.config.logging import setup_logging
from jobengine.config.settings import JobStoreType, settings
from jobengine.infra.database import get_database
from jobengine.v1.core.exceptions import (
    JobEngineError,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    job_engine_exception_handler,
)
from jobengine.v1.healthz import router as health_router
from jobengine.v1.jobs.registry_init import register_job_handlers
from jobengine.v1.jobs.routes import router as jobs_router
from jobengine.v1.jobs.service import JobService, build_job_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if settings.job_store == JobStoreType.DATABASE:
        await get_database(settings).close()


def create_app(job_service: JobService | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Per-tenant background job engine",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(JobEngineError, job_engine_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    if job_service is None:
        job_service = build_job_service(settings)
        register_job_handlers(job_service, settings)
    app.state.job_service = job_service

    # Handlers register at startup only; freeze outside development
    if settings.environment != "development":
        job_service.registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobengine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
