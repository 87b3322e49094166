"""Job Engine CLI - Main Entry Point"""

import asyncio
import contextlib
import signal

import typer
from rich.console import Console

from jobengine.config.logging import setup_logging
from jobengine.config.settings import JobStoreType, settings
from jobengine.infra.database import get_database
from jobengine.v1.core.exceptions import JobEngineError
from jobengine.v1.core.security import TenantContext
from jobengine.v1.jobs.registry_init import register_job_handlers
from jobengine.v1.jobs.service import JobService, build_job_service

from .utils.formatting import create_stats_tables, print_error, print_info, print_success

console = Console()

app = typer.Typer(
    name="jobengine",
    help="Background job engine operations",
    rich_markup_mode="rich",
)


def _open_service() -> JobService:
    service = build_job_service(settings)
    register_job_handlers(service, settings)
    return service


async def _close() -> None:
    if settings.job_store == JobStoreType.DATABASE:
        await get_database(settings).close()


@app.command("init-db")
def init_db():
    """Create the job tables in the configured database"""
    if settings.job_store != JobStoreType.DATABASE:
        print_error("JOB_STORE is not 'database', nothing to initialize")
        raise typer.Exit(1)

    async def run():
        try:
            await get_database(settings).create_all()
        finally:
            await _close()

    asyncio.run(run())
    print_success("Job tables created")


@app.command()
def dispatch(
    once: bool = typer.Option(False, "--once", help="Run a single dispatch tick"),
    batch_size: int = typer.Option(
        settings.job_batch_size, "--batch-size", "-b", min=1, help="Jobs per tick"
    ),
    interval_ms: int = typer.Option(
        settings.job_poll_interval_ms,
        "--interval",
        "-i",
        min=1,
        help="Milliseconds between ticks",
    ),
):
    """Run the job dispatcher"""
    setup_logging()
    service = _open_service()

    async def run() -> int:
        try:
            if once:
                return await service.process_pending_jobs(batch_size)

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(
                        sig, lambda: asyncio.ensure_future(service.dispatcher.stop())
                    )
            await service.dispatcher.run_forever(interval_ms / 1000, batch_size)
            return 0
        finally:
            await _close()

    processed = asyncio.run(run())
    if once:
        print_success(f"Processed {processed} job(s)")
    else:
        print_info("Dispatcher stopped")


@app.command()
def cleanup(
    retention_days: int = typer.Option(
        settings.job_retention_days,
        "--retention-days",
        "-r",
        help="Delete terminal jobs created more than this many days ago",
    ),
):
    """Delete finished jobs past the retention window"""
    service = _open_service()

    async def run() -> int:
        try:
            return await service.cleanup(retention_days)
        finally:
            await _close()

    try:
        deleted = asyncio.run(run())
    except JobEngineError as e:
        print_error(f"Cleanup failed: {e.message}")
        raise typer.Exit(1) from None

    print_success(f"Deleted {deleted} job(s)")


@app.command()
def stats(tenant_id: str = typer.Argument(..., help="Tenant to report on")):
    """Show job statistics for a tenant"""
    service = _open_service()

    async def run():
        try:
            return await service.get_stats(TenantContext(tenant_id=tenant_id))
        finally:
            await _close()

    try:
        job_stats = asyncio.run(run())
    except JobEngineError as e:
        print_error(f"Failed to get stats: {e.message}")
        raise typer.Exit(1) from None

    for table in create_stats_tables(job_stats):
        console.print(table)


if __name__ == "__main__":
    app()
