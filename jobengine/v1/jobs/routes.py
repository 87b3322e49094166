"""
Job management API endpoints.

Thin HTTP layer over JobService; engine errors are rendered by the
application exception handlers.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from jobengine.v1.core.exceptions import create_success_response
from jobengine.v1.core.security import TenantContext, TenantDep
from jobengine.v1.jobs.models import JobStatus
from jobengine.v1.jobs.schemas import JobCreate, JobListFilters
from jobengine.v1.jobs.service import JobService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_job_service(request: Request) -> JobService:
    """Dependency returning the application's job service."""
    return request.app.state.job_service


JobServiceDep = Depends(get_job_service)


@router.post("", response_model=dict, status_code=201)
async def create_job(
    job_create: JobCreate,
    ctx: TenantContext = TenantDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Create a new background job."""
    job = await service.create_job(ctx, job_create)

    logger.info(
        "Job created via API",
        extra={"job_id": str(job.id), "type": job.type, "tenant_id": ctx.tenant_id},
    )

    return create_success_response(data=job.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: JobStatus | None = Query(default=None, description="Filter by status"),
    type: str | None = Query(default=None, description="Filter by job type"),
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    ctx: TenantContext = TenantDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""
    filters = JobListFilters(status=status, type=type, page=page, limit=limit)
    result = await service.find_many(ctx, filters)

    return create_success_response(data=result.model_dump(mode="json"))


@router.get("/stats", response_model=dict)
async def get_job_stats(
    ctx: TenantContext = TenantDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Get job statistics for the tenant."""
    stats = await service.get_stats(ctx)

    return create_success_response(data=stats.model_dump(mode="json"))


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    ctx: TenantContext = TenantDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Get a specific job by ID."""
    job = await service.find_one(ctx, job_id)

    return create_success_response(data=job.model_dump(mode="json"))


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(
    job_id: UUID,
    ctx: TenantContext = TenantDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Cancel a pending job."""
    job = await service.cancel_job(ctx, job_id)

    logger.info(
        "Job cancelled via API",
        extra={
            "job_id": str(job_id),
            "tenant_id": ctx.tenant_id,
            "user_id": ctx.user_id,
        },
    )

    return create_success_response(data=job.model_dump(mode="json"))


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: UUID,
    ctx: TenantContext = TenantDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Retry a failed job."""
    job = await service.retry_job(ctx, job_id)

    logger.info(
        "Job retried via API",
        extra={
            "job_id": str(job_id),
            "tenant_id": ctx.tenant_id,
            "user_id": ctx.user_id,
        },
    )

    return create_success_response(data=job.model_dump(mode="json"))
