from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from jobengine.config.settings import Settings, SettingsDep
from jobengine.v1.core.exceptions import StoreIOError, create_success_response
from jobengine.v1.jobs.routes import JobServiceDep
from jobengine.v1.jobs.service import JobService

router = APIRouter()


class StoreHealth(BaseModel):
    """Job store health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class DispatcherHealth(BaseModel):
    """Dispatcher status within this process."""

    running: bool
    in_flight: int
    registered_handlers: list[str]


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, service: JobService = JobServiceDep
):
    """Health check with job store and dispatcher status."""

    store_health = await _check_store_health(service)

    health_data = {
        "ok": store_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
        "store": store_health.model_dump(),
        "dispatcher": DispatcherHealth(
            running=service.dispatcher.running,
            in_flight=len(service.dispatcher.in_flight),
            registered_handlers=service.registry.list(),
        ).model_dump(),
    }

    return create_success_response(data=health_data)


async def _check_store_health(service: JobService) -> StoreHealth:
    """Check the store answers a cheap query and time it."""
    start_time = datetime.now(UTC)

    try:
        await service.store.list_due(start_time, 1)
    except StoreIOError as e:
        return StoreHealth(connected=False, error=e.message)

    response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
    return StoreHealth(connected=True, response_time_ms=round(response_time_ms, 2))
