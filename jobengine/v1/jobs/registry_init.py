"""
Registers the built-in job handlers on a job service.
"""

import logging

from jobengine.config.settings import Settings
from jobengine.v1.jobs.handlers import MaintenanceCleanupHandler
from jobengine.v1.jobs.service import JobService

logger = logging.getLogger(__name__)

MAINTENANCE_CLEANUP = "maintenance_cleanup"


def register_job_handlers(service: JobService, settings: Settings) -> None:
    """Register all built-in job handlers with the service's registry."""

    logger.info("Registering job handlers")

    service.register_handler(
        MAINTENANCE_CLEANUP, MaintenanceCleanupHandler(settings, service.stats)
    )

    logger.info(
        "Job handlers registered",
        extra={"registered_handlers": service.registry.list()},
    )
