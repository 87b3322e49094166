"""
Polling job dispatcher.

One call to ``process_pending_jobs`` is a dispatch tick: fetch due jobs,
claim them, run their handlers and record the outcome. Ticks are driven by
an external timer (``run_forever`` in the CLI worker, or any scheduler).
"""

import asyncio
import inspect
import os
import socket
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter

from jobengine.config.logging import get_logger, job_context
from jobengine.config.settings import Settings
from jobengine.v1.core.exceptions import (
    ConfigurationError,
    StoreIOError,
    TransientHandlerError,
)
from jobengine.v1.core.registries import HandlerRegistry
from jobengine.v1.jobs.models import JobStatus, utcnow
from jobengine.v1.jobs.retry import RetryPolicy
from jobengine.v1.jobs.schemas import Job
from jobengine.v1.jobs.store import JobStore

logger = get_logger(__name__)

_result_adapter = TypeAdapter(Any)


class JobDispatcher:
    """
    Claims due jobs and drives them to completed, pending (retry) or failed.

    Guarantees at most one in-flight invocation per job:
    - ``store.claim`` is the authoritative gate, across processes
    - ``_in_flight`` additionally stops overlapping ticks in this process
      from re-entering a job; it gives no cross-process guarantee
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        concurrency: int = 1,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.store = store
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock
        self.concurrency = concurrency
        self.dispatcher_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self._in_flight: set[UUID] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings, store: JobStore, registry: HandlerRegistry
    ) -> "JobDispatcher":
        return cls(
            store,
            registry,
            retry_policy=RetryPolicy.from_settings(settings),
            concurrency=settings.job_concurrency,
        )

    @property
    def in_flight(self) -> frozenset[UUID]:
        return frozenset(self._in_flight)

    async def process_pending_jobs(self, batch_size: int = 10) -> int:
        """
        Run one dispatch tick.

        Returns the number of jobs completed, rescheduled or failed during
        this tick. Never raises: handler and store failures are logged.
        """
        now = self.clock()

        try:
            due = await self.store.list_due(now, batch_size)
        except Exception:
            logger.exception(
                "Failed to list due jobs", dispatcher_id=self.dispatcher_id
            )
            return 0

        # Mark before any await so an overlapping tick sees them immediately
        selected: list[Job] = []
        for job in due:
            if job.id in self._in_flight:
                logger.debug("Job already in flight, skipping", job_id=str(job.id))
                continue
            self._in_flight.add(job.id)
            selected.append(job)

        if not selected:
            return 0

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(job: Job) -> bool:
            async with semaphore:
                return await self._dispatch(job, now)

        try:
            outcomes = await asyncio.gather(*(bounded(job) for job in selected))
        finally:
            # Covers jobs whose dispatch never started (tick cancelled)
            self._in_flight.difference_update(job.id for job in selected)
        processed = sum(outcomes)

        logger.info(
            "Dispatch tick finished",
            dispatcher_id=self.dispatcher_id,
            due=len(due),
            processed=processed,
        )
        return processed

    async def _dispatch(self, job: Job, now: datetime) -> bool:
        """Claim, execute and finalize one job. True if its state was finalized."""
        with job_context(job.id, job.type, job.tenant_id, self.dispatcher_id):
            try:
                if not await self.store.claim(job.id, now):
                    logger.debug("Lost claim race, skipping")
                    return False

                # Reflect the claim locally instead of re-reading the record
                attempts = job.attempts + 1
                logger.info("Processing job started", attempts=attempts)

                try:
                    result = await self._invoke(job)
                except ConfigurationError as e:
                    logger.warning("No handler registered", error=e.message)
                    await self.store.update_status(
                        job.id, JobStatus.FAILED, error=e.message
                    )
                    return True
                except TransientHandlerError as e:
                    await self._handle_failure(job, attempts, e.message)
                    return True

                await self.store.update_status(
                    job.id,
                    JobStatus.COMPLETED,
                    completed_at=self.clock(),
                    result=result,
                )
                logger.info("Processing job completed successfully")
                return True

            except StoreIOError as e:
                logger.error(
                    "Job store failed during dispatch, skipping job for this tick",
                    error=e.message,
                )
                return False
            except Exception:
                logger.exception("Unexpected error while dispatching job")
                return False
            finally:
                self._in_flight.discard(job.id)

    async def _invoke(self, job: Job) -> Any:
        """Run the job's handler and return its result as JSON-compatible data."""
        handler = self.registry.resolve(job.type)

        try:
            result = handler(job.tenant_id, job.payload)
            if inspect.isawaitable(result):
                result = await result
            # Results are stored as JSON
            return _result_adapter.dump_python(result, mode="json")
        except Exception as e:
            raise TransientHandlerError(
                str(e) or e.__class__.__name__,
                details={"exception": e.__class__.__name__},
            ) from e

    async def _handle_failure(self, job: Job, attempts: int, message: str) -> None:
        if self.retry_policy.should_retry(attempts, job.max_attempts):
            next_run_at = self.retry_policy.next_run_at(attempts, self.clock())
            await self.store.update_status(
                job.id,
                JobStatus.PENDING,
                error=message,
                scheduled_at=next_run_at,
            )
            logger.warning(
                "Job scheduled for retry",
                error=message,
                attempts=attempts,
                max_attempts=job.max_attempts,
                next_run_at=next_run_at.isoformat(),
            )
        else:
            await self.store.update_status(job.id, JobStatus.FAILED, error=message)
            logger.error(
                "Job failed permanently",
                error=message,
                attempts=attempts,
            )

    async def run_forever(
        self,
        poll_interval_s: float,
        batch_size: int = 10,
        error_backoff_s: float = 5,
    ) -> None:
        """Tick until ``stop`` is called."""
        if self.running:
            raise RuntimeError("Dispatcher is already running")

        self.running = True
        logger.info(
            "Starting job dispatcher",
            dispatcher_id=self.dispatcher_id,
            concurrency=self.concurrency,
            poll_interval_s=poll_interval_s,
        )

        try:
            while self.running:
                try:
                    await self.process_pending_jobs(batch_size)
                    await asyncio.sleep(poll_interval_s)
                except Exception:
                    logger.exception(
                        "Error in dispatcher loop", dispatcher_id=self.dispatcher_id
                    )
                    await asyncio.sleep(error_backoff_s)  # Back off on errors
        finally:
            self.running = False

    async def stop(self, timeout_s: float = 30) -> None:
        """Stop ticking and wait up to ``timeout_s`` for in-flight jobs."""
        logger.info("Stopping job dispatcher", dispatcher_id=self.dispatcher_id)
        self.running = False

        waited = 0.0
        while self._in_flight and waited < timeout_s:
            await asyncio.sleep(0.1)
            waited += 0.1

        if self._in_flight:
            logger.warning(
                "Dispatcher stopped with jobs in flight",
                dispatcher_id=self.dispatcher_id,
                in_flight=len(self._in_flight),
            )
