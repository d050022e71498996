import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from time import monotonic, perf_counter

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from paygsite.application.jobs.errors import PermanentJobError
from paygsite.application.jobs.queue import claim_job, complete_job, fail_job
from paygsite.application.jobs.registry import JobHandler
from paygsite.core.config import settings
from paygsite.domain.models.job import Job, JobStatus
from paygsite.infrastructure.cache.redis_client import write_worker_heartbeat
from paygsite.infrastructure.db.async_session import AsyncSessionLocal
from paygsite.infrastructure.db.session import SessionLocal
from paygsite.infrastructure.logging.context import bind_job_context, reset_job_context
from paygsite.infrastructure.observability.metrics import (
    JOB_CLAIM_ERRORS_TOTAL,
    JOBS_CLAIMED_TOTAL,
    record_job_outcome,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkerOptions:
    # Empty means no filter: unregistered types are still claimed and fail through the retry path.
    job_types: list[str] = field(default_factory=list)
    poll_interval: float = 5.0
    busy_interval: float = 0.1
    concurrency: int = 1
    verbose: bool = True
    heartbeat_interval: float | None = None

    @classmethod
    def from_settings(cls) -> "WorkerOptions":
        return cls(
            job_types=settings.worker_job_type_list,
            poll_interval=settings.worker_poll_interval_seconds,
            busy_interval=settings.worker_busy_interval_seconds,
            concurrency=settings.worker_concurrency,
            verbose=settings.worker_verbose,
            heartbeat_interval=settings.worker_heartbeat_interval_seconds,
        )


class JobWorker:
    """Polls the job table, runs claimed jobs through registered handlers and records the outcome.

    Claims happen one at a time from a single polling task; handlers run as independent asyncio
    tasks, at most ``options.concurrency`` at once. Handlers get an ``AsyncSession``; claims and
    failure records use a sync session in a worker thread, so no database round trip runs on the
    event loop thread. ``stop()`` stops claiming and then waits for
    every in-flight handler, so a job is never left ``running`` by a clean shutdown.
    """

    def __init__(
        self,
        options: WorkerOptions | None = None,
        *,
        session_factory: Callable[[], Session] | None = None,
        async_session_factory: Callable[[], AsyncSession] | None = None,
        heartbeat: Callable[[], object] | None = None,
    ) -> None:
        self.options = options or WorkerOptions()
        if self.options.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._session_factory = session_factory or SessionLocal
        self._async_session_factory = async_session_factory or AsyncSessionLocal
        self._heartbeat = heartbeat or write_worker_heartbeat
        self._handlers: dict[str, JobHandler] = {}
        self.running = False
        self.active_jobs = 0
        self._job_tasks: set[asyncio.Task] = set()
        self._poll_task: asyncio.Task | None = None
        self._wakeup: asyncio.Event | None = None
        self._stopped: asyncio.Event | None = None
        self._last_heartbeat_at: float | None = None

    def register(self, job_type: str, handler: JobHandler) -> "JobWorker":
        self._handlers[str(job_type)] = handler
        return self

    @property
    def registered_job_types(self) -> list[str]:
        return sorted(self._handlers)

    async def start(self) -> None:
        if self.running:
            logger.warning("worker_already_running")
            return

        self.running = True
        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        self._log(
            "worker_started job_types=%s concurrency=%s poll_interval=%s busy_interval=%s",
            ",".join(self.options.job_types) or "*",
            self.options.concurrency,
            self.options.poll_interval,
            self.options.busy_interval,
        )
        self._poll_task = asyncio.create_task(self._poll(), name="job-worker-poll")

    async def stop(self) -> None:
        if self._poll_task is None and not self._job_tasks:
            self.running = False
            return

        self.running = False
        self._log("worker_stopping in_flight=%s", self.active_jobs)
        if self._wakeup is not None:
            self._wakeup.set()

        poll_task = self._poll_task
        if poll_task is not None:
            await poll_task
            self._poll_task = None

        while self._job_tasks:
            await asyncio.gather(*list(self._job_tasks), return_exceptions=True)

        self._log("worker_stopped")
        if self._stopped is not None:
            self._stopped.set()

    async def run_until_stopped(self) -> None:
        if not self.running:
            await self.start()
        if self._stopped is None:
            raise RuntimeError("worker was stopped before it started")
        await self._stopped.wait()

    async def _poll(self) -> None:
        while self.running:
            await self._maybe_heartbeat()

            if self.active_jobs >= self.options.concurrency:
                await self._sleep(self.options.busy_interval)
                continue

            try:
                job = await asyncio.to_thread(self._claim_next)
            except Exception:
                JOB_CLAIM_ERRORS_TOTAL.inc()
                logger.exception("job_claim_failed")
                await self._sleep(self.options.poll_interval)
                continue

            if job is None:
                await self._sleep(self.options.poll_interval)
                continue

            # A job claimed while stop() was pending is still dispatched; it is already running in the store.
            self._dispatch(job)
            await self._sleep(self.options.busy_interval)

    def _claim_next(self) -> Job | None:
        with self._session_factory() as db:
            job = claim_job(db, self.options.job_types or None)
            db.commit()
            if job is None:
                return None
            db.refresh(job)
            return job

    def _dispatch(self, job: Job) -> None:
        self.active_jobs += 1
        JOBS_CLAIMED_TOTAL.labels(job_type=job.job_type).inc()
        task = asyncio.create_task(self._process_job(job), name=f"job-{job.id}")
        self._job_tasks.add(task)
        task.add_done_callback(self._job_tasks.discard)

    async def _process_job(self, job: Job) -> None:
        started_at = perf_counter()
        tokens = bind_job_context(
            job_id=str(job.id),
            job_type=job.job_type,
            tenant_id=str(job.tenant_id) if job.tenant_id else None,
        )
        try:
            self._log("job_processing job_id=%s job_type=%s attempt=%s", job.id, job.job_type, job.attempts)

            handler = self._handlers.get(job.job_type)
            if handler is None:
                logger.error("job_handler_missing job_id=%s job_type=%s", job.id, job.job_type)
                await asyncio.to_thread(
                    self._record_failure,
                    job,
                    f"No handler registered for job type: {job.job_type}",
                    permanent=False,
                    duration_seconds=perf_counter() - started_at,
                )
                return

            failure: tuple[str, bool] | None = None
            async with self._async_session_factory() as db:
                try:
                    result = await handler(job, db)
                    await db.run_sync(complete_job, job.id, self._normalize_result(job, result))
                    await db.commit()
                except Exception as exc:
                    await db.rollback()
                    logger.exception("job_failed job_id=%s job_type=%s attempt=%s", job.id, job.job_type, job.attempts)
                    failure = (str(exc) or repr(exc), isinstance(exc, PermanentJobError))

            duration_seconds = perf_counter() - started_at
            if failure is not None:
                error, permanent = failure
                await asyncio.to_thread(
                    self._record_failure, job, error, permanent=permanent, duration_seconds=duration_seconds
                )
                return

            record_job_outcome(job.job_type, JobStatus.COMPLETED.value, duration_seconds)
            self._log("job_completed job_id=%s job_type=%s duration_ms=%s", job.id, job.job_type, int(duration_seconds * 1000))
        except Exception:
            # Outcome could not be stored; the job stays running until an operator requeues it.
            logger.exception("job_outcome_record_failed job_id=%s job_type=%s", job.id, job.job_type)
        finally:
            self.active_jobs -= 1
            reset_job_context(tokens)

    def _record_failure(self, job: Job, error: str, *, permanent: bool, duration_seconds: float) -> None:
        with self._session_factory() as db:
            failed = fail_job(db, job.id, error, job.attempts, permanent=permanent)
            status = failed.status
            next_run_at = failed.run_at
            db.commit()

        record_job_outcome(job.job_type, status, duration_seconds)
        if status == JobStatus.DEAD.value:
            logger.warning(
                "job_dead_lettered job_id=%s job_type=%s attempts=%s permanent=%s error=%s",
                job.id,
                job.job_type,
                job.attempts,
                permanent,
                error,
            )
        else:
            self._log(
                "job_retry_scheduled job_id=%s job_type=%s attempt=%s next_run_at=%s",
                job.id,
                job.job_type,
                job.attempts,
                next_run_at.isoformat() if next_run_at else None,
            )

    @staticmethod
    def _normalize_result(job: Job, result: object) -> Mapping | None:
        if result is None or isinstance(result, Mapping):
            return result
        logger.warning("job_result_discarded job_id=%s result_type=%s", job.id, type(result).__name__)
        return None

    async def _maybe_heartbeat(self) -> None:
        interval = self.options.heartbeat_interval
        if not interval:
            return
        now = monotonic()
        if self._last_heartbeat_at is not None and now - self._last_heartbeat_at < interval:
            return
        self._last_heartbeat_at = now
        try:
            await asyncio.to_thread(self._heartbeat)
        except Exception:
            logger.warning("worker_heartbeat_failed", exc_info=True)

    async def _sleep(self, seconds: float) -> None:
        if self._wakeup is None or self._wakeup.is_set():
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _log(self, message: str, *args: object) -> None:
        if self.options.verbose:
            logger.info(message, *args)


def create_worker(
    handlers: Mapping[str, JobHandler],
    options: WorkerOptions | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    async_session_factory: Callable[[], AsyncSession] | None = None,
    heartbeat: Callable[[], object] | None = None,
) -> JobWorker:
    worker = JobWorker(
        options,
        session_factory=session_factory,
        async_session_factory=async_session_factory,
        heartbeat=heartbeat,
    )
    for job_type, handler in handlers.items():
        if handler is not None:
            worker.register(job_type, handler)
    return worker
