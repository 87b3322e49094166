"""
Job service: the programmatic interface of the job engine.
"""

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from jobengine.config.logging import get_logger
from jobengine.config.settings import JobStoreType, Settings
from jobengine.infra.database import get_database
from jobengine.v1.core.exceptions import InvalidStateError
from jobengine.v1.core.registries import HandlerRegistry, JobHandler
from jobengine.v1.core.security import TenantContext
from jobengine.v1.jobs.dispatcher import JobDispatcher
from jobengine.v1.jobs.models import DEFAULT_MAX_ATTEMPTS, JobStatus, utcnow
from jobengine.v1.jobs.schemas import Job, JobCreate, JobListFilters, JobPage, JobStats
from jobengine.v1.jobs.stats import JobStatsService
from jobengine.v1.jobs.store import InMemoryJobStore, JobStore, SqlAlchemyJobStore

logger = get_logger(__name__)


class JobService:
    """Service for creating, querying and managing background jobs."""

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        dispatcher: JobDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.store = store
        self.registry = registry
        self.dispatcher = dispatcher or JobDispatcher(store, registry, clock=clock)
        self.stats = JobStatsService(store, clock=clock)
        self.default_max_attempts = default_max_attempts

    async def create_job(self, ctx: TenantContext, job_create: JobCreate) -> Job:
        """Create a pending job for the tenant."""
        job = await self.store.create(
            tenant_id=ctx.tenant_id,
            type=job_create.type,
            payload=job_create.payload,
            scheduled_at=job_create.scheduled_at,
            priority=job_create.priority,
            max_attempts=job_create.max_attempts or self.default_max_attempts,
        )

        logger.info(
            "Job created",
            job_id=str(job.id),
            type=job.type,
            priority=job.priority,
            tenant_id=ctx.tenant_id,
            scheduled_at=job.scheduled_at.isoformat() if job.scheduled_at else None,
        )
        return job

    async def find_many(self, ctx: TenantContext, filters: JobListFilters) -> JobPage:
        """List the tenant's jobs, priority desc then newest first."""
        items, total = await self.store.find_many(
            ctx.tenant_id,
            status=filters.status,
            type=filters.type,
            page=filters.page,
            limit=filters.limit,
        )
        offset = (filters.page - 1) * filters.limit
        return JobPage(data=items, total=total, has_more=offset + len(items) < total)

    async def find_one(self, ctx: TenantContext, job_id: UUID) -> Job:
        return await self.store.find_one(ctx.tenant_id, job_id)

    async def cancel_job(self, ctx: TenantContext, job_id: UUID) -> Job:
        """Cancel a pending job. Running jobs cannot be stopped."""
        job = await self._transition(
            ctx, job_id, JobStatus.PENDING, JobStatus.CANCELLED, action="cancel"
        )
        logger.info("Job cancelled", job_id=str(job_id), tenant_id=ctx.tenant_id)
        return job

    async def retry_job(self, ctx: TenantContext, job_id: UUID) -> Job:
        """Re-queue a failed job with a fresh attempt budget."""
        job = await self._transition(
            ctx,
            job_id,
            JobStatus.FAILED,
            JobStatus.PENDING,
            action="retry",
            attempts=0,
            error=None,
            scheduled_at=None,
        )
        logger.info("Job retried", job_id=str(job_id), tenant_id=ctx.tenant_id)
        return job

    async def _transition(
        self,
        ctx: TenantContext,
        job_id: UUID,
        from_status: JobStatus,
        to_status: JobStatus,
        action: str,
        **fields,
    ) -> Job:
        job = await self.store.find_one(ctx.tenant_id, job_id)
        if job.status == from_status:
            updated = await self.store.update_status(
                job_id, to_status, expected_status=from_status, **fields
            )
            if updated is not None:
                return updated
            # Status moved under us (e.g. a dispatcher claimed it)
            job = await self.store.find_one(ctx.tenant_id, job_id)

        raise InvalidStateError(
            f"Cannot {action} job in '{job.status.value}' status",
            details={"job_id": str(job_id), "status": job.status.value},
        )

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        self.registry.register(job_type, handler)

    async def process_pending_jobs(self, batch_size: int = 10) -> int:
        return await self.dispatcher.process_pending_jobs(batch_size)

    async def get_stats(self, ctx: TenantContext) -> JobStats:
        return await self.stats.get_stats(ctx)

    async def cleanup(self, retention_days: int) -> int:
        return await self.stats.cleanup(retention_days)


def build_store(settings: Settings) -> JobStore:
    """Pick the job store implementation configured in settings."""
    if settings.job_store == JobStoreType.MEMORY:
        return InMemoryJobStore()
    return SqlAlchemyJobStore(get_database(settings).SessionLocal)


def build_job_service(
    settings: Settings,
    store: JobStore | None = None,
    registry: HandlerRegistry | None = None,
) -> JobService:
    """Wire store, registry and dispatcher from settings."""
    if store is None:
        store = build_store(settings)
    if registry is None:
        registry = HandlerRegistry()
    dispatcher = JobDispatcher.from_settings(settings, store, registry)
    return JobService(
        store,
        registry,
        dispatcher=dispatcher,
        default_max_attempts=settings.job_max_attempts,
    )
