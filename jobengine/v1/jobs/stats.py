"""
Read-only job statistics and the retention sweep.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from jobengine.config.logging import get_logger
from jobengine.v1.core.exceptions import ValidationError
from jobengine.v1.core.security import TenantContext
from jobengine.v1.jobs.models import JobStatus, utcnow
from jobengine.v1.jobs.schemas import (
    JobStats,
    RecentFailure,
    StatusCount,
    TypeCount,
)
from jobengine.v1.jobs.store import JobStore

logger = get_logger(__name__)

RECENT_FAILURES_WINDOW = timedelta(hours=24)
RECENT_FAILURES_LIMIT = 10


class JobStatsService:
    """Aggregates job counts for observability and deletes expired jobs."""

    def __init__(self, store: JobStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def get_stats(self, ctx: TenantContext) -> JobStats:
        """Counts by status and type, plus the latest failures of the last day."""
        by_status = await self.store.count_by_status(ctx.tenant_id)
        by_type = await self.store.count_by_type(ctx.tenant_id)
        failures = await self.store.recent_failures(
            ctx.tenant_id,
            since=self.clock() - RECENT_FAILURES_WINDOW,
            limit=RECENT_FAILURES_LIMIT,
        )

        return JobStats(
            by_status=[
                StatusCount(status=status, count=by_status.get(status, 0))
                for status in JobStatus
            ],
            by_type=[
                TypeCount(type=job_type, count=count)
                for job_type, count in sorted(by_type.items())
            ],
            recent_failures=[
                RecentFailure(
                    id=job.id, type=job.type, error=job.error, created_at=job.created_at
                )
                for job in failures
            ],
        )

    async def cleanup(self, retention_days: int, tenant_id: str | None = None) -> int:
        """
        Delete terminal jobs created more than ``retention_days`` ago.

        Without ``tenant_id`` the sweep covers every tenant (operator use).
        """
        if retention_days < 0:
            raise ValidationError(
                "retention_days must be non-negative",
                details={"retention_days": retention_days},
            )

        cutoff = self.clock() - timedelta(days=retention_days)
        deleted_count = await self.store.delete_terminal_older_than(
            cutoff, tenant_id=tenant_id
        )

        logger.info(
            "Cleaned up old jobs",
            deleted_count=deleted_count,
            retention_days=retention_days,
            tenant_id=tenant_id,
            cutoff=cutoff.isoformat(),
        )
        return deleted_count
