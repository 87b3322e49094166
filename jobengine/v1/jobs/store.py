"""
Job stores.

``JobStore`` is the contract the dispatcher and services depend on. Two
implementations are provided and picked by dependency injection:

- ``InMemoryJobStore`` keeps jobs in a dict; fast fake for tests and dev.
- ``SqlAlchemyJobStore`` persists to the ``background_jobs`` table.

``claim`` is the only cross-process concurrency primitive: a conditional
``pending -> running`` transition that reports whether it won.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy import and_, delete, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobengine.config.logging import get_logger
from jobengine.v1.core.exceptions import NotFoundError, StoreIOError, ValidationError
from jobengine.v1.jobs.models import (
    DEFAULT_MAX_ATTEMPTS,
    TERMINAL_STATUSES,
    BackgroundJob,
    JobStatus,
    utcnow,
)
from jobengine.v1.jobs.schemas import Job

logger = get_logger(__name__)

# Fields update_status may touch besides status itself
UPDATABLE_FIELDS = frozenset(
    {"error", "result", "scheduled_at", "started_at", "completed_at", "attempts"}
)


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update job fields: {sorted(unknown)}")


def _check_scheduled_at(scheduled_at: datetime | None) -> None:
    # Due checks compare against an aware clock
    if scheduled_at is not None and scheduled_at.utcoffset() is None:
        raise ValidationError(
            "scheduled_at must include a timezone offset",
            details={"scheduled_at": scheduled_at.isoformat()},
        )


class JobStore(Protocol):
    """Durable CRUD over job records."""

    async def create(
        self,
        tenant_id: str,
        type: str,
        payload: dict[str, Any],
        scheduled_at: datetime | None = None,
        priority: int = 0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> Job: ...

    async def find_many(
        self,
        tenant_id: str,
        status: JobStatus | None = None,
        type: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Job], int]:
        """Page of a tenant's jobs, priority desc then newest first, plus total."""
        ...

    async def find_one(self, tenant_id: str, job_id: UUID) -> Job:
        """Get a tenant's job or raise NotFoundError."""
        ...

    async def list_due(self, now: datetime, batch_size: int) -> list[Job]:
        """Pending jobs whose schedule has passed, priority desc then FIFO."""
        ...

    async def claim(self, job_id: UUID, now: datetime) -> bool:
        """Atomically move a pending job to running and count the attempt."""
        ...

    async def update_status(
        self,
        job_id: UUID,
        status: JobStatus,
        expected_status: JobStatus | None = None,
        **fields: Any,
    ) -> Job | None:
        """Apply a status change with its fields in one step.

        With ``expected_status`` the change only happens if the job is
        currently in that status. Returns the updated job, or None when the
        condition failed or the job no longer exists.
        """
        ...

    async def delete_terminal_older_than(
        self, cutoff: datetime, tenant_id: str | None = None
    ) -> int:
        """Delete terminal jobs created before cutoff, for one tenant or all."""
        ...

    async def count_by_status(self, tenant_id: str) -> dict[JobStatus, int]: ...

    async def count_by_type(self, tenant_id: str) -> dict[str, int]: ...

    async def recent_failures(
        self, tenant_id: str, since: datetime, limit: int
    ) -> list[Job]: ...


def _not_found(job_id: UUID) -> NotFoundError:
    return NotFoundError(f"Job '{job_id}' not found", details={"job_id": str(job_id)})


class InMemoryJobStore:
    """Job store backed by a process-local dict.

    Every method runs without suspending, so each one is atomic with respect
    to other coroutines on the same event loop.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._jobs: dict[UUID, Job] = {}

    async def create(
        self,
        tenant_id: str,
        type: str,
        payload: dict[str, Any],
        scheduled_at: datetime | None = None,
        priority: int = 0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> Job:
        _check_scheduled_at(scheduled_at)

        job = Job(
            id=uuid4(),
            tenant_id=tenant_id,
            type=type,
            payload=payload,
            status=JobStatus.PENDING,
            priority=priority,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_at=scheduled_at,
            created_at=self._clock(),
        )
        self._jobs[job.id] = job
        return job.model_copy(deep=True)

    async def find_many(
        self,
        tenant_id: str,
        status: JobStatus | None = None,
        type: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Job], int]:
        matches = [
            job
            for job in self._jobs.values()
            if job.tenant_id == tenant_id
            and (status is None or job.status == status)
            and (type is None or job.type == type)
        ]
        matches.sort(key=lambda j: (-j.priority, -j.created_at.timestamp()))

        offset = (page - 1) * limit
        items = [job.model_copy(deep=True) for job in matches[offset : offset + limit]]
        return items, len(matches)

    async def find_one(self, tenant_id: str, job_id: UUID) -> Job:
        job = self._jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id:
            raise _not_found(job_id)
        return job.model_copy(deep=True)

    async def list_due(self, now: datetime, batch_size: int) -> list[Job]:
        due = [
            job
            for job in self._jobs.values()
            if job.status == JobStatus.PENDING
            and (job.scheduled_at is None or job.scheduled_at <= now)
        ]
        due.sort(key=lambda j: (-j.priority, j.created_at))
        return [job.model_copy(deep=True) for job in due[:batch_size]]

    async def claim(self, job_id: UUID, now: datetime) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return False

        job.status = JobStatus.RUNNING
        job.started_at = now
        job.attempts += 1
        return True

    async def update_status(
        self,
        job_id: UUID,
        status: JobStatus,
        expected_status: JobStatus | None = None,
        **fields: Any,
    ) -> Job | None:
        _check_fields(fields)

        job = self._jobs.get(job_id)
        if job is None:
            return None
        if expected_status is not None and job.status != expected_status:
            return None

        job.status = status
        for name, value in fields.items():
            setattr(job, name, value)
        return job.model_copy(deep=True)

    async def delete_terminal_older_than(
        self, cutoff: datetime, tenant_id: str | None = None
    ) -> int:
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status in TERMINAL_STATUSES
            and job.created_at < cutoff
            and (tenant_id is None or job.tenant_id == tenant_id)
        ]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)

    async def count_by_status(self, tenant_id: str) -> dict[JobStatus, int]:
        counts: dict[JobStatus, int] = {}
        for job in self._jobs.values():
            if job.tenant_id == tenant_id:
                counts[job.status] = counts.get(job.status, 0) + 1
        return counts

    async def count_by_type(self, tenant_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for job in self._jobs.values():
            if job.tenant_id == tenant_id:
                counts[job.type] = counts.get(job.type, 0) + 1
        return counts

    async def recent_failures(
        self, tenant_id: str, since: datetime, limit: int
    ) -> list[Job]:
        failures = [
            job
            for job in self._jobs.values()
            if job.tenant_id == tenant_id
            and job.status == JobStatus.FAILED
            and job.created_at >= since
        ]
        failures.sort(key=lambda j: j.created_at, reverse=True)
        return [job.model_copy(deep=True) for job in failures[:limit]]


class SqlAlchemyJobStore:
    """Job store persisted through async SQLAlchemy.

    Each operation runs in its own session and commits before returning.
    Database errors surface as StoreIOError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Job store operation failed", operation=operation, error=str(e))
            raise StoreIOError(
                f"Job store {operation} failed", details={"error": str(e)}
            ) from e

    async def create(
        self,
        tenant_id: str,
        type: str,
        payload: dict[str, Any],
        scheduled_at: datetime | None = None,
        priority: int = 0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> Job:
        _check_scheduled_at(scheduled_at)

        record = BackgroundJob(
            id=uuid4(),
            tenant_id=tenant_id,
            type=type,
            payload=payload,
            status=JobStatus.PENDING.value,
            priority=priority,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_at=scheduled_at,
            created_at=self._clock(),
        )

        async with self._session("create") as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Job.model_validate(record)

    async def find_many(
        self,
        tenant_id: str,
        status: JobStatus | None = None,
        type: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Job], int]:
        base_query = select(BackgroundJob).where(BackgroundJob.tenant_id == tenant_id)
        if status is not None:
            base_query = base_query.where(BackgroundJob.status == status.value)
        if type is not None:
            base_query = base_query.where(BackgroundJob.type == type)

        count_query = select(func.count()).select_from(base_query.subquery())
        jobs_query = (
            base_query.order_by(
                desc(BackgroundJob.priority), desc(BackgroundJob.created_at)
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )

        async with self._session("find_many") as session:
            total = (await session.execute(count_query)).scalar() or 0
            records = (await session.execute(jobs_query)).scalars().all()
            return [Job.model_validate(record) for record in records], total

    async def find_one(self, tenant_id: str, job_id: UUID) -> Job:
        query = select(BackgroundJob).where(
            and_(BackgroundJob.id == job_id, BackgroundJob.tenant_id == tenant_id)
        )

        async with self._session("find_one") as session:
            record = (await session.execute(query)).scalar_one_or_none()
            if record is None:
                raise _not_found(job_id)
            return Job.model_validate(record)

    async def list_due(self, now: datetime, batch_size: int) -> list[Job]:
        query = (
            select(BackgroundJob)
            .where(
                and_(
                    BackgroundJob.status == JobStatus.PENDING.value,
                    or_(
                        BackgroundJob.scheduled_at.is_(None),
                        BackgroundJob.scheduled_at <= now,
                    ),
                )
            )
            .order_by(desc(BackgroundJob.priority), BackgroundJob.created_at)
            .limit(batch_size)
        )

        async with self._session("list_due") as session:
            records = (await session.execute(query)).scalars().all()
            return [Job.model_validate(record) for record in records]

    async def claim(self, job_id: UUID, now: datetime) -> bool:
        # Conditional UPDATE: only one dispatcher can see rowcount == 1
        query = (
            update(BackgroundJob)
            .where(
                and_(
                    BackgroundJob.id == job_id,
                    BackgroundJob.status == JobStatus.PENDING.value,
                )
            )
            .values(
                status=JobStatus.RUNNING.value,
                started_at=now,
                attempts=BackgroundJob.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )

        async with self._session("claim") as session:
            result = await session.execute(query)
            await session.commit()
            return result.rowcount == 1

    async def update_status(
        self,
        job_id: UUID,
        status: JobStatus,
        expected_status: JobStatus | None = None,
        **fields: Any,
    ) -> Job | None:
        _check_fields(fields)

        conditions = [BackgroundJob.id == job_id]
        if expected_status is not None:
            conditions.append(BackgroundJob.status == expected_status.value)

        query = (
            update(BackgroundJob)
            .where(and_(*conditions))
            .values(status=status.value, **fields)
            .execution_options(synchronize_session=False)
        )

        async with self._session("update_status") as session:
            result = await session.execute(query)
            if result.rowcount != 1:
                await session.rollback()
                return None

            await session.commit()
            record = await session.get(BackgroundJob, job_id, populate_existing=True)
            return Job.model_validate(record) if record else None

    async def delete_terminal_older_than(
        self, cutoff: datetime, tenant_id: str | None = None
    ) -> int:
        query = delete(BackgroundJob).where(
            and_(
                BackgroundJob.status.in_([s.value for s in TERMINAL_STATUSES]),
                BackgroundJob.created_at < cutoff,
            )
        )
        if tenant_id is not None:
            query = query.where(BackgroundJob.tenant_id == tenant_id)
        query = query.execution_options(synchronize_session=False)

        async with self._session("delete_terminal_older_than") as session:
            result = await session.execute(query)
            await session.commit()
            return result.rowcount

    async def count_by_status(self, tenant_id: str) -> dict[JobStatus, int]:
        query = (
            select(BackgroundJob.status, func.count(BackgroundJob.id))
            .where(BackgroundJob.tenant_id == tenant_id)
            .group_by(BackgroundJob.status)
        )

        async with self._session("count_by_status") as session:
            rows = (await session.execute(query)).all()
            return {JobStatus(status): count for status, count in rows}

    async def count_by_type(self, tenant_id: str) -> dict[str, int]:
        query = (
            select(BackgroundJob.type, func.count(BackgroundJob.id))
            .where(BackgroundJob.tenant_id == tenant_id)
            .group_by(BackgroundJob.type)
        )

        async with self._session("count_by_type") as session:
            return dict((await session.execute(query)).all())

    async def recent_failures(
        self, tenant_id: str, since: datetime, limit: int
    ) -> list[Job]:
        query = (
            select(BackgroundJob)
            .where(
                and_(
                    BackgroundJob.tenant_id == tenant_id,
                    BackgroundJob.status == JobStatus.FAILED.value,
                    BackgroundJob.created_at >= since,
                )
            )
            .order_by(desc(BackgroundJob.created_at))
            .limit(limit)
        )

        async with self._session("recent_failures") as session:
            records = (await session.execute(query)).scalars().all()
            return [Job.model_validate(record) for record in records]
