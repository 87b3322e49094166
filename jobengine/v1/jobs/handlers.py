"""
Built-in job handlers.

Business handlers (marketplace sync, report exports, ...) live with their
own features and register themselves at startup; the engine only ships the
maintenance job that keeps the jobs table itself bounded.
"""

from typing import Any

from jobengine.config.logging import get_logger
from jobengine.config.settings import Settings
from jobengine.v1.jobs.stats import JobStatsService

logger = get_logger(__name__)


class MaintenanceCleanupHandler:
    """
    Job handler that deletes the submitting tenant's terminal jobs past the
    retention window. Other tenants' jobs are never touched.

    Payload expected:
    {
        "retention_days": 30,  # optional, defaults to JOB_RETENTION_DAYS
        "dry_run": false  # optional
    }
    """

    def __init__(self, settings: Settings, stats: JobStatsService):
        self.settings = settings
        self.stats = stats

    async def __call__(self, tenant_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        retention_days = payload.get("retention_days", self.settings.job_retention_days)
        dry_run = payload.get("dry_run", False)

        if not isinstance(retention_days, int) or isinstance(retention_days, bool):
            raise ValueError(f"Invalid retention_days: {retention_days!r}")

        logger.info(
            "Starting job cleanup",
            tenant_id=tenant_id,
            retention_days=retention_days,
            dry_run=dry_run,
        )

        if dry_run:
            return {
                "status": "dry_run",
                "retention_days": retention_days,
                "message": "Would clean up old jobs",
            }

        deleted_count = await self.stats.cleanup(retention_days, tenant_id=tenant_id)
        return {
            "status": "completed",
            "retention_days": retention_days,
            "deleted_count": deleted_count,
        }
