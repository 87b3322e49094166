"""
Background job models: status state machine and the persisted table.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobengine.infra.database import Base, UTCDateTime

DEFAULT_MAX_ATTEMPTS = 3


def utcnow() -> datetime:
    """Default clock for stores and the dispatcher."""
    return datetime.now(UTC)


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Completed, failed and cancelled jobs never run again on their own."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


class BackgroundJob(Base):
    """
    Persisted background job.

    Only the dispatcher moves a job through pending -> running -> terminal;
    admin actions may cancel a pending job or re-queue a failed one.
    """

    __tablename__ = "background_jobs"

    # Core fields
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Tenant isolation boundary"
    )
    type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Job type resolved against the handler registry"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Handler input, passed verbatim"
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|running|completed|failed|cancelled",
    )
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Higher is dispatched first"
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of claims so far"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_ATTEMPTS,
        comment="Attempts allowed before the job fails",
    )

    # Outcome
    error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last failure message"
    )
    result: Mapped[Any | None] = mapped_column(
        JSON, nullable=True, comment="Handler return value"
    )

    # Timestamps
    scheduled_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Not eligible before this time"
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'cancelled')",
            name="background_jobs_status_check",
        ),
        CheckConstraint(
            "attempts <= max_attempts", name="background_jobs_attempts_check"
        ),
        Index("ix_background_jobs_due", "status", "scheduled_at", "priority"),
        Index("ix_background_jobs_tenant_created", "tenant_id", "created_at"),
    )
