import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from paygsite.application.jobs.queue import complete_open_jobs_for_tenant, create_job
from paygsite.domain.models.job import Job, JobType
from paygsite.domain.models.site_content import Page
from paygsite.domain.models.tenant import Tenant, TenantStatus

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    error_code: str = "provisioning_error"


class TenantNotFoundError(ProvisioningError):
    error_code = "tenant_not_found"

    def __init__(self, tenant_id: UUID) -> None:
        super().__init__(f"Tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class TenantStateError(ProvisioningError):
    error_code = "tenant_invalid_state"


def _get_tenant(db: Session, tenant_id: UUID) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if tenant is None:
        raise TenantNotFoundError(tenant_id)
    return tenant


def start_site_build(db: Session, tenant_id: UUID, plan_pages: int | None = None, *, rebuild: bool = False) -> Job:
    """Enqueue the first pipeline stage for a tenant; used by onboarding, checkout and admin rebuild."""
    tenant = _get_tenant(db, tenant_id)
    pages = int(plan_pages if plan_pages is not None else tenant.plan_pages)
    tenant.status = TenantStatus.BUILDING.value
    job = create_job(
        db,
        tenant_id=tenant.id,
        job_type=JobType.AI_GENERATE_SPEC.value,
        payload={"tenantId": str(tenant.id), "planPages": pages, "rebuild": rebuild},
    )
    logger.info("site_build_queued tenant_id=%s job_id=%s plan_pages=%s rebuild=%s", tenant.id, job.id, pages, rebuild)
    return job


def approve_site(db: Session, tenant_id: UUID) -> Job:
    """Publish a reviewed site and queue the site-ready notification."""
    tenant = _get_tenant(db, tenant_id)
    if tenant.status != TenantStatus.PENDING_REVIEW.value:
        raise TenantStateError(f"Tenant {tenant_id} is '{tenant.status}', not pending review")

    tenant.status = TenantStatus.LIVE.value
    job = queue_email(db, tenant.id, "site_ready")
    logger.info("site_approved tenant_id=%s email_job_id=%s", tenant.id, job.id)
    return job


def force_complete_build(db: Session, tenant_id: UUID) -> int:
    """Take a stuck build live with the pages it already has; returns how many jobs were closed."""
    tenant = _get_tenant(db, tenant_id)
    if tenant.status != TenantStatus.BUILDING.value:
        raise TenantStateError(f"Tenant {tenant_id} is '{tenant.status}', not building")
    page_count = db.scalar(select(func.count(Page.id)).where(Page.tenant_id == tenant_id)) or 0
    if not page_count:
        raise TenantStateError(f"Tenant {tenant_id} has no generated pages yet")

    tenant.status = TenantStatus.LIVE.value
    closed = complete_open_jobs_for_tenant(db, tenant_id)
    logger.warning("site_build_force_completed tenant_id=%s pages=%s jobs_closed=%s", tenant_id, page_count, closed)
    return closed


def queue_email(
    db: Session,
    tenant_id: UUID,
    template: str,
    to: str | None = None,
    data: dict[str, Any] | None = None,
) -> Job:
    payload: dict[str, Any] = {"tenantId": str(tenant_id), "template": template}
    if to:
        payload["to"] = to
    if data:
        payload["data"] = dict(data)
    return create_job(db, tenant_id=tenant_id, job_type=JobType.SEND_EMAIL.value, payload=payload)
