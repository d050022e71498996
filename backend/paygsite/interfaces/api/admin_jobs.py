from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from paygsite.application.jobs.queue import (
    DEFAULT_DEAD_JOBS_LIMIT,
    DEFAULT_TENANT_JOBS_LIMIT,
    cleanup_old_jobs,
    delete_job,
    get_dead_jobs,
    get_job,
    get_jobs_for_tenant,
    get_queue_stats,
    requeue_stale_jobs,
    retry_dead_job,
)
from paygsite.application.services.provisioning_service import (
    approve_site,
    force_complete_build,
    start_site_build,
)
from paygsite.core.config import settings
from paygsite.domain.models.job import Job, JobStatus
from paygsite.infrastructure.db.session import get_db
from paygsite.interfaces.api.deps import require_admin

router = APIRouter(prefix="/admin", tags=["admin-jobs"], dependencies=[Depends(require_admin)])


class RetryJobRequest(BaseModel):
    payload: dict[str, Any] | None = None


class RebuildTenantRequest(BaseModel):
    plan_pages: int | None = Field(default=None, ge=1)


class CleanupRequest(BaseModel):
    older_than_days: int | None = Field(default=None, ge=1)


class RequeueStaleRequest(BaseModel):
    stale_after_seconds: int | None = Field(default=None, ge=1)


def _serialize_job(job: Job) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "tenant_id": str(job.tenant_id) if job.tenant_id else None,
        "job_type": job.job_type,
        "status": job.status,
        "payload": job.payload,
        "attempts": job.attempts,
        "run_at": job.run_at.isoformat() if job.run_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "last_error": job.last_error,
        "result": job.result,
        "created_at": job.created_at.isoformat() if job.created_at else None,
    }


@router.get("/jobs/stats", status_code=status.HTTP_200_OK)
def queue_stats(db: Session = Depends(get_db)) -> dict:
    return {"stats": get_queue_stats(db)}


@router.get("/jobs/dead", status_code=status.HTTP_200_OK)
def dead_jobs(
    tenant_id: UUID | None = Query(default=None),
    limit: int = Query(default=DEFAULT_DEAD_JOBS_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
) -> dict:
    return {"items": [_serialize_job(job) for job in get_dead_jobs(db, tenant_id=tenant_id, limit=limit)]}


@router.get("/tenants/{tenant_id}/jobs", status_code=status.HTTP_200_OK)
def tenant_jobs(
    tenant_id: UUID,
    status_filter: JobStatus | None = Query(default=None, alias="status"),
    job_type: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_TENANT_JOBS_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
) -> dict:
    jobs = get_jobs_for_tenant(
        db,
        tenant_id,
        status=status_filter.value if status_filter else None,
        job_type=job_type,
        limit=limit,
    )
    return {"items": [_serialize_job(job) for job in jobs]}


@router.get("/jobs/{job_id}", status_code=status.HTTP_200_OK)
def job_detail(job_id: UUID, db: Session = Depends(get_db)) -> dict:
    return _serialize_job(get_job(db, job_id))


@router.post("/jobs/{job_id}/retry", status_code=status.HTTP_200_OK)
def retry_job(job_id: UUID, body: RetryJobRequest | None = None, db: Session = Depends(get_db)) -> dict:
    job = retry_dead_job(db, job_id, payload=body.payload if body else None)
    db.commit()
    db.refresh(job)
    return _serialize_job(job)


@router.post("/jobs/{job_id}/delete", status_code=status.HTTP_200_OK)
def remove_job(job_id: UUID, db: Session = Depends(get_db)) -> dict:
    delete_job(db, job_id)
    db.commit()
    return {"success": True, "id": str(job_id)}


@router.post("/tenants/{tenant_id}/rebuild", status_code=status.HTTP_202_ACCEPTED)
def rebuild_tenant(tenant_id: UUID, body: RebuildTenantRequest | None = None, db: Session = Depends(get_db)) -> dict:
    job = start_site_build(db, tenant_id, body.plan_pages if body else None, rebuild=True)
    db.commit()
    db.refresh(job)
    return _serialize_job(job)


@router.post("/tenants/{tenant_id}/approve", status_code=status.HTTP_200_OK)
def approve_tenant(tenant_id: UUID, db: Session = Depends(get_db)) -> dict:
    email_job = approve_site(db, tenant_id)
    db.commit()
    return {"success": True, "tenant_id": str(tenant_id), "status": "live", "email_job_id": str(email_job.id)}


@router.post("/tenants/{tenant_id}/force-complete", status_code=status.HTTP_200_OK)
def force_complete_tenant(tenant_id: UUID, db: Session = Depends(get_db)) -> dict:
    closed = force_complete_build(db, tenant_id)
    db.commit()
    return {"success": True, "tenant_id": str(tenant_id), "status": "live", "jobs_completed": closed}


@router.post("/jobs/maintenance/cleanup", status_code=status.HTTP_200_OK)
def cleanup_jobs(body: CleanupRequest | None = None, db: Session = Depends(get_db)) -> dict:
    older_than_days = body.older_than_days if body and body.older_than_days else settings.job_retention_days
    deleted = cleanup_old_jobs(db, older_than_days=older_than_days)
    db.commit()
    return {"deleted": deleted, "older_than_days": older_than_days}


@router.post("/jobs/maintenance/requeue-stale", status_code=status.HTTP_200_OK)
def requeue_stale(body: RequeueStaleRequest | None = None, db: Session = Depends(get_db)) -> dict:
    stale_after_seconds = (
        body.stale_after_seconds if body and body.stale_after_seconds else settings.job_stale_after_seconds
    )
    jobs = requeue_stale_jobs(db, stale_after_seconds=stale_after_seconds)
    items = [_serialize_job(job) for job in jobs]
    db.commit()
    return {"requeued": len(items), "stale_after_seconds": stale_after_seconds, "items": items}
