"""
Job system Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jobengine.v1.jobs.models import DEFAULT_MAX_ATTEMPTS, JobStatus


class Job(BaseModel):
    """A job as returned by every store implementation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus
    priority: int = 0
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    error: str | None = None
    result: Any | None = None
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class JobCreate(BaseModel):
    """Schema for creating a new job."""

    type: str = Field(..., min_length=1, description="Job type identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    scheduled_at: datetime | None = Field(
        default=None, description="Earliest time to run job"
    )
    priority: int = Field(default=0, description="Higher runs first")
    max_attempts: int | None = Field(
        default=None, ge=1, description="Attempts before the job fails"
    )

    @field_validator("scheduled_at")
    @classmethod
    def validate_scheduled_at(cls, v):
        if v is not None and v.utcoffset() is None:
            raise ValueError("scheduled_at must include a timezone offset")
        return v


class JobListFilters(BaseModel):
    """Schema for job listing filters."""

    status: JobStatus | None = Field(default=None, description="Filter by job status")
    type: str | None = Field(default=None, description="Filter by job type")
    page: int = Field(default=1, ge=1, description="1-based page number")
    limit: int = Field(
        default=50, ge=1, le=1000, description="Maximum results to return"
    )


class JobPage(BaseModel):
    """One page of jobs."""

    data: list[Job]
    total: int
    has_more: bool


class StatusCount(BaseModel):
    status: JobStatus
    count: int


class TypeCount(BaseModel):
    type: str
    count: int


class RecentFailure(BaseModel):
    id: UUID
    type: str
    error: str | None
    created_at: datetime


class JobStats(BaseModel):
    """Schema for job statistics."""

    by_status: list[StatusCount]
    by_type: list[TypeCount]
    recent_failures: list[RecentFailure]
