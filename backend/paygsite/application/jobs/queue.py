"""Durable job queue backed by the ``jobs`` table.

Every function takes the caller's ``Session``, flushes its changes and leaves the commit to
the caller. ``claim_job`` is the only operation with concurrency requirements: it relies on
PostgreSQL ``FOR UPDATE SKIP LOCKED`` so that any number of workers, in any number of
processes, can poll the same table without ever claiming the same row twice.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from paygsite.application.jobs.errors import JobNotFoundError, JobStateError
from paygsite.domain.models.job import Job, JobStatus

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 4
# 30s, 2min, 8min, 30min; indexed by attempt number, last value reused past the end.
BACKOFF_SCHEDULE_SECONDS: tuple[int, ...] = (30, 120, 480, 1800)
DEFAULT_TENANT_JOBS_LIMIT = 50
DEFAULT_DEAD_JOBS_LIMIT = 100
DEFAULT_RETENTION_DAYS = 30
STALE_JOB_ERROR = "Job lease expired while running"

RETRYABLE_STATUSES = (JobStatus.DEAD.value, JobStatus.FAILED.value)
DELETABLE_STATUSES = (JobStatus.COMPLETED.value, JobStatus.DEAD.value)
OPEN_STATUSES = (JobStatus.PENDING.value, JobStatus.RUNNING.value)


def compute_backoff_seconds(attempt: int) -> int:
    index = min(max(attempt, 1), len(BACKOFF_SCHEDULE_SECONDS)) - 1
    return BACKOFF_SCHEDULE_SECONDS[index]


def is_retry_exhausted(attempts_so_far: int) -> bool:
    return attempts_so_far >= MAX_ATTEMPTS


def _get_job(db: Session, job_id: UUID) -> Job:
    job = db.get(Job, job_id, populate_existing=True)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


def get_job(db: Session, job_id: UUID) -> Job:
    return _get_job(db, job_id)


def create_job(
    db: Session,
    *,
    tenant_id: UUID | None,
    job_type: str,
    payload: Mapping[str, Any] | None = None,
    run_at: datetime | None = None,
) -> Job:
    job_payload = dict(payload or {})
    if tenant_id is not None:
        job_payload.setdefault("tenantId", str(tenant_id))

    job = Job(
        tenant_id=tenant_id,
        job_type=str(job_type),
        status=JobStatus.PENDING.value,
        payload=job_payload,
        attempts=0,
        run_at=run_at or datetime.now(UTC),
    )
    db.add(job)
    db.flush()
    logger.info(
        "job_created job_id=%s job_type=%s tenant_id=%s run_at=%s",
        job.id,
        job.job_type,
        tenant_id,
        job.run_at.isoformat(),
    )
    return job


def claim_job(db: Session, job_types: Iterable[str] | None = None) -> Job | None:
    """Lock and start the oldest due pending job, or return None when nothing is eligible.

    The row lock lasts until the caller's transaction ends, so callers should commit right away.
    """
    conditions = [
        Job.status == JobStatus.PENDING.value,
        Job.run_at <= func.now(),
    ]
    type_filter = [str(job_type) for job_type in (job_types or [])]
    if type_filter:
        conditions.append(Job.job_type.in_(type_filter))

    job = db.execute(
        select(Job)
        .where(*conditions)
        .order_by(Job.created_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if job is None:
        return None

    job.status = JobStatus.RUNNING.value
    job.started_at = datetime.now(UTC)
    job.attempts = int(job.attempts or 0) + 1
    db.flush()
    return job


def complete_job(db: Session, job_id: UUID, result: Mapping[str, Any] | None = None) -> Job:
    job = _get_job(db, job_id)
    job.status = JobStatus.COMPLETED.value
    job.completed_at = datetime.now(UTC)
    if result is not None:
        job.result = dict(result)
    db.flush()
    return job


def fail_job(
    db: Session,
    job_id: UUID,
    error: str,
    attempts_so_far: int,
    *,
    permanent: bool = False,
) -> Job:
    """Record a failed attempt: reschedule with backoff, or dead-letter once attempts are exhausted."""
    job = _get_job(db, job_id)
    now = datetime.now(UTC)
    job.last_error = error

    if permanent or is_retry_exhausted(attempts_so_far):
        job.status = JobStatus.DEAD.value
        job.completed_at = now
    else:
        job.status = JobStatus.PENDING.value
        job.run_at = now + timedelta(seconds=compute_backoff_seconds(attempts_so_far))
    db.flush()
    return job


def retry_dead_job(db: Session, job_id: UUID, *, payload: Mapping[str, Any] | None = None) -> Job:
    job = _get_job(db, job_id)
    if job.status not in RETRYABLE_STATUSES:
        raise JobStateError(job_id, job.status, RETRYABLE_STATUSES)

    job.status = JobStatus.PENDING.value
    job.attempts = 0
    job.last_error = None
    job.started_at = None
    job.completed_at = None
    job.run_at = datetime.now(UTC)
    if payload is not None:
        job.payload = dict(payload)
    db.flush()
    logger.info("job_requeued_by_admin job_id=%s job_type=%s payload_replaced=%s", job.id, job.job_type, payload is not None)
    return job


def delete_job(db: Session, job_id: UUID) -> None:
    job = _get_job(db, job_id)
    if job.status not in DELETABLE_STATUSES:
        raise JobStateError(job_id, job.status, DELETABLE_STATUSES)
    db.delete(job)
    db.flush()


def get_queue_stats(db: Session) -> dict[str, int]:
    stats = {status.value: 0 for status in JobStatus}
    rows = db.execute(select(Job.status, func.count(Job.id)).group_by(Job.status)).all()
    for status, count in rows:
        stats[status] = int(count)
    return stats


def get_jobs_for_tenant(
    db: Session,
    tenant_id: UUID,
    *,
    status: str | None = None,
    job_type: str | None = None,
    limit: int = DEFAULT_TENANT_JOBS_LIMIT,
) -> list[Job]:
    query = select(Job).where(Job.tenant_id == tenant_id)
    if status:
        query = query.where(Job.status == status)
    if job_type:
        query = query.where(Job.job_type == job_type)
    return list(db.execute(query.order_by(Job.created_at.desc()).limit(limit)).scalars().all())


def get_dead_jobs(
    db: Session,
    *,
    tenant_id: UUID | None = None,
    limit: int = DEFAULT_DEAD_JOBS_LIMIT,
) -> list[Job]:
    query = select(Job).where(Job.status == JobStatus.DEAD.value)
    if tenant_id is not None:
        query = query.where(Job.tenant_id == tenant_id)
    query = query.order_by(Job.completed_at.desc().nulls_last()).limit(limit)
    return list(db.execute(query).scalars().all())


def cleanup_old_jobs(db: Session, *, older_than_days: int = DEFAULT_RETENTION_DAYS) -> int:
    cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
    result = db.execute(
        delete(Job).where(
            Job.status == JobStatus.COMPLETED.value,
            Job.completed_at < cutoff,
        )
    )
    deleted = int(result.rowcount or 0)
    logger.info("jobs_cleanup_completed deleted=%s cutoff=%s", deleted, cutoff.isoformat())
    return deleted


def complete_open_jobs_for_tenant(db: Session, tenant_id: UUID) -> int:
    """Admin override: mark a tenant's pending and running jobs completed without running them.

    A worker still executing one of them will overwrite the row when its handler finishes.
    """
    result = db.execute(
        update(Job)
        .where(Job.tenant_id == tenant_id, Job.status.in_(OPEN_STATUSES))
        .values(status=JobStatus.COMPLETED.value, completed_at=datetime.now(UTC))
    )
    completed = int(result.rowcount or 0)
    logger.info("tenant_jobs_force_completed tenant_id=%s jobs=%s", tenant_id, completed)
    return completed


def requeue_stale_jobs(db: Session, *, stale_after_seconds: int) -> list[Job]:
    """Route jobs stuck in ``running`` past the threshold through the normal failure path.

    Meant for jobs orphaned by a crashed worker; a handler legitimately running longer than the
    threshold would be claimed a second time, so pick a threshold above the slowest handler.
    """
    cutoff = datetime.now(UTC) - timedelta(seconds=stale_after_seconds)
    stale_jobs = db.execute(
        select(Job)
        .where(
            Job.status == JobStatus.RUNNING.value,
            Job.started_at < cutoff,
        )
        .order_by(Job.started_at.asc())
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    ).scalars().all()

    for job in stale_jobs:
        fail_job(db, job.id, STALE_JOB_ERROR, int(job.attempts or 0))
        logger.warning(
            "stale_job_requeued job_id=%s job_type=%s attempts=%s new_status=%s",
            job.id,
            job.job_type,
            job.attempts,
            job.status,
        )
    return list(stale_jobs)
