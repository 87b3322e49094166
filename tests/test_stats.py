"""Tests for job statistics, the retention sweep and the maintenance handler."""

import pytest

from jobengine.config.settings import Settings
from jobengine.v1.core.exceptions import NotFoundError, ValidationError
from jobengine.v1.jobs.handlers import MaintenanceCleanupHandler
from jobengine.v1.jobs.models import JobStatus
from jobengine.v1.jobs.registry_init import MAINTENANCE_CLEANUP, register_job_handlers
from jobengine.v1.jobs.schemas import JobCreate


async def _failed_job(service, ctx, job_type="export_csv", error="boom"):
    job = await service.create_job(ctx, JobCreate(type=job_type))
    await service.store.update_status(job.id, JobStatus.FAILED, error=error)
    return job


class TestGetStats:
    @pytest.mark.asyncio
    async def test_empty_tenant_reports_zeros(self, service, tenant):
        stats = await service.get_stats(tenant)

        assert {s.status: s.count for s in stats.by_status} == {
            status: 0 for status in JobStatus
        }
        assert stats.by_type == []
        assert stats.recent_failures == []

    @pytest.mark.asyncio
    async def test_counts_by_status_and_type(self, service, tenant, other_tenant):
        await service.create_job(tenant, JobCreate(type="sync_orders"))
        await service.create_job(tenant, JobCreate(type="export_csv"))
        await _failed_job(service, tenant)
        await service.create_job(other_tenant, JobCreate(type="sync_orders"))

        stats = await service.get_stats(tenant)

        by_status = {s.status: s.count for s in stats.by_status}
        assert by_status[JobStatus.PENDING] == 2
        assert by_status[JobStatus.FAILED] == 1
        assert by_status[JobStatus.COMPLETED] == 0
        assert [(t.type, t.count) for t in stats.by_type] == [
            ("export_csv", 2),
            ("sync_orders", 1),
        ]

    @pytest.mark.asyncio
    async def test_recent_failures_limited_to_last_day(self, service, tenant, clock):
        await _failed_job(service, tenant, error="yesterday's news")
        clock.advance(hours=25)

        for i in range(12):
            await _failed_job(service, tenant, error=f"failure {i}")
            clock.advance(minutes=1)

        stats = await service.get_stats(tenant)

        assert len(stats.recent_failures) == 10
        assert stats.recent_failures[0].error == "failure 11"
        assert all(f.error != "yesterday's news" for f in stats.recent_failures)

    @pytest.mark.asyncio
    async def test_recent_failures_are_tenant_scoped(
        self, service, tenant, other_tenant
    ):
        await _failed_job(service, other_tenant)

        stats = await service.get_stats(tenant)

        assert stats.recent_failures == []


class TestCleanup:
    @pytest.mark.asyncio
    async def test_removes_only_old_terminal_jobs(self, service, tenant, clock):
        old_failed = await _failed_job(service, tenant)
        old_pending = await service.create_job(tenant, JobCreate(type="export_csv"))

        clock.advance(days=8)
        fresh_failed = await _failed_job(service, tenant)

        deleted = await service.cleanup(7)

        assert deleted == 1
        remaining = {j.id for j in (await service.store.find_many("tenant-a"))[0]}
        assert old_failed.id not in remaining
        assert old_pending.id in remaining
        assert fresh_failed.id in remaining

    @pytest.mark.asyncio
    async def test_zero_retention_removes_all_terminal(self, service, tenant, clock):
        await _failed_job(service, tenant)
        await service.create_job(tenant, JobCreate(type="export_csv"))
        clock.advance(seconds=1)

        assert await service.cleanup(0) == 1

    @pytest.mark.asyncio
    async def test_tenant_scoped_cleanup(self, service, tenant, other_tenant, clock):
        await _failed_job(service, tenant)
        await _failed_job(service, other_tenant)
        clock.advance(days=8)

        assert await service.stats.cleanup(7, tenant_id="tenant-b") == 1
        assert (await service.store.find_many("tenant-a"))[1] == 1
        assert (await service.store.find_many("tenant-b"))[1] == 0

    @pytest.mark.asyncio
    async def test_negative_retention_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.cleanup(-1)

        assert exc_info.value.status_code == 422


class TestMaintenanceCleanupHandler:
    @pytest.mark.asyncio
    async def test_runs_as_a_job(self, memory_service, tenant, clock):
        register_job_handlers(memory_service, Settings(job_retention_days=30))
        old = await _failed_job(memory_service, tenant)
        clock.advance(days=31)

        job = await memory_service.create_job(
            tenant, JobCreate(type=MAINTENANCE_CLEANUP)
        )
        await memory_service.process_pending_jobs()

        done = await memory_service.find_one(tenant, job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.result == {
            "status": "completed",
            "retention_days": 30,
            "deleted_count": 1,
        }
        remaining = {j.id for j in (await memory_service.store.find_many("tenant-a"))[0]}
        assert old.id not in remaining

    @pytest.mark.asyncio
    async def test_dry_run_deletes_nothing(self, memory_service, tenant, clock):
        handler = MaintenanceCleanupHandler(Settings(), memory_service.stats)
        await _failed_job(memory_service, tenant)
        clock.advance(days=31)

        result = await handler("tenant-a", {"retention_days": 1, "dry_run": True})

        assert result["status"] == "dry_run"
        assert result["retention_days"] == 1
        assert (await memory_service.store.find_many("tenant-a"))[1] == 1

    @pytest.mark.asyncio
    async def test_invalid_retention_days(self, memory_service):
        handler = MaintenanceCleanupHandler(Settings(), memory_service.stats)

        with pytest.raises(ValueError, match="retention_days"):
            await handler("tenant-a", {"retention_days": "seven"})

        with pytest.raises(ValueError, match="retention_days"):
            await handler("tenant-a", {"retention_days": True})

    @pytest.mark.asyncio
    async def test_only_cleans_submitting_tenant(
        self, memory_service, tenant, other_tenant, clock
    ):
        register_job_handlers(memory_service, Settings())
        theirs = await _failed_job(memory_service, other_tenant)
        mine = await _failed_job(memory_service, tenant)
        clock.advance(seconds=1)

        job = await memory_service.create_job(
            tenant,
            JobCreate(type=MAINTENANCE_CLEANUP, payload={"retention_days": 0}),
        )
        await memory_service.process_pending_jobs()

        done = await memory_service.find_one(tenant, job.id)
        assert done.result["deleted_count"] == 1
        with pytest.raises(NotFoundError):
            await memory_service.find_one(tenant, mine.id)
        kept = await memory_service.find_one(other_tenant, theirs.id)
        assert kept.status == JobStatus.FAILED
