import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paygsite.application.jobs.errors import PermanentJobError
from paygsite.application.jobs.queue import create_job
from paygsite.application.jobs.registry import HandlerSpec, build_idempotency_key, handlers_from_specs
from paygsite.application.services.ai_provider import get_seed_generator, get_spec_generator
from paygsite.application.services.email_service import send_email
from paygsite.application.services.email_templates import render_email
from paygsite.application.services.mock_site_content import build_mock_seed, build_mock_spec
from paygsite.application.services.seed_importer import import_seed, validate_seed_for_import
from paygsite.core.config import is_anthropic_configured, is_openai_configured, is_resend_configured, settings
from paygsite.domain.models.ai_generation import AIBuildSpec, AIGeneration, AIGenerationKind
from paygsite.domain.models.email_log import EmailLog
from paygsite.domain.models.job import Job, JobType
from paygsite.domain.models.onboarding_submission import OnboardingSubmission
from paygsite.domain.models.tenant import Tenant, TenantStatus

logger = logging.getLogger(__name__)

SPEC_VERSION = "1.0"


def _tenant_id_from_payload(job: Job) -> UUID:
    raw = (job.payload or {}).get("tenantId") or job.tenant_id
    if raw is None:
        raise PermanentJobError(f"Job {job.id} payload has no tenantId")
    try:
        return raw if isinstance(raw, UUID) else UUID(str(raw))
    except ValueError as exc:
        raise PermanentJobError(f"Job {job.id} payload has invalid tenantId: {raw}") from exc


async def _get_tenant(db: AsyncSession, tenant_id: UUID) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise PermanentJobError(f"Tenant not found: {tenant_id}")
    return tenant


def _plan_pages(job: Job, tenant: Tenant) -> int:
    value = (job.payload or {}).get("planPages")
    return int(value) if value is not None else int(tenant.plan_pages)


async def _next_stage_exists(db: AsyncSession, idempotency_key: str) -> bool:
    existing = await db.scalar(
        select(Job.id).where(Job.payload["idempotencyKey"].astext == idempotency_key).limit(1)
    )
    return existing is not None


async def _enqueue_next_stage(
    db: AsyncSession,
    *,
    source_job: Job,
    tenant_id: UUID,
    job_type: str,
    payload: dict[str, Any],
) -> tuple[str, bool]:
    idempotency_key = build_idempotency_key(tenant_id, job_type, source_job.id)
    if await _next_stage_exists(db, idempotency_key):
        logger.info("pipeline_stage_already_queued job_type=%s idempotency_key=%s", job_type, idempotency_key)
        return idempotency_key, False

    await db.run_sync(
        create_job,
        tenant_id=tenant_id,
        job_type=job_type,
        payload={**payload, "tenantId": str(tenant_id), "idempotencyKey": idempotency_key},
    )
    return idempotency_key, True


async def handle_ai_generate_spec(job: Job, db: AsyncSession) -> dict[str, Any]:
    tenant_id = _tenant_id_from_payload(job)
    tenant = await _get_tenant(db, tenant_id)
    plan_pages = _plan_pages(job, tenant)
    logger.info("ai_spec_generation_started tenant_id=%s plan_pages=%s", tenant_id, plan_pages)

    if is_openai_configured():
        submission = await db.scalar(
            select(OnboardingSubmission)
            .where(OnboardingSubmission.tenant_id == tenant_id)
            .order_by(OnboardingSubmission.created_at.desc())
            .limit(1)
        )
        if submission is None:
            raise PermanentJobError(f"No onboarding submission found for tenant {tenant_id}")

        # No transaction stays open across the provider call.
        await db.commit()
        generated = await get_spec_generator().generate_spec(dict(submission.raw_answers or {}), plan_pages)
        spec = generated.document
        generation_input = {
            "model": generated.model,
            "promptTokens": generated.input_tokens,
            "completionTokens": generated.output_tokens,
        }
        status = "spec_generated"
    else:
        logger.warning("ai_spec_generation_mocked tenant_id=%s reason=openai_not_configured", tenant_id)
        spec = build_mock_spec(tenant, plan_pages)
        generation_input = {"model": "mock", "promptTokens": 0, "completionTokens": 0}
        status = "mock_spec_created"

    db.add(AIBuildSpec(tenant_id=tenant_id, spec_version=SPEC_VERSION, spec=spec))
    db.add(AIGeneration(tenant_id=tenant_id, kind=AIGenerationKind.GPT_SPEC.value, input=generation_input, output=spec))
    tenant.status = TenantStatus.BUILDING.value

    _, queued = await _enqueue_next_stage(
        db,
        source_job=job,
        tenant_id=tenant_id,
        job_type=JobType.AI_GENERATE_SEED.value,
        payload={"planPages": plan_pages},
    )
    return {"status": status, "nextJob": JobType.AI_GENERATE_SEED.value, "nextJobQueued": queued}


async def handle_ai_generate_seed(job: Job, db: AsyncSession) -> dict[str, Any]:
    tenant_id = _tenant_id_from_payload(job)
    tenant = await _get_tenant(db, tenant_id)
    plan_pages = _plan_pages(job, tenant)
    logger.info("ai_seed_generation_started tenant_id=%s", tenant_id)

    if is_anthropic_configured():
        build_spec = await db.scalar(
            select(AIBuildSpec)
            .where(AIBuildSpec.tenant_id == tenant_id)
            .order_by(AIBuildSpec.created_at.desc())
            .limit(1)
        )
        if build_spec is None:
            raise PermanentJobError(f"No build spec found for tenant {tenant_id}")

        await db.commit()
        generated = await get_seed_generator().generate_seed(dict(build_spec.spec or {}), plan_pages)
        seed = generated.document
        generation_input = {
            "model": generated.model,
            "inputTokens": generated.input_tokens,
            "outputTokens": generated.output_tokens,
        }
        status = "seed_generated"
    else:
        logger.warning("ai_seed_generation_mocked tenant_id=%s reason=anthropic_not_configured", tenant_id)
        seed = build_mock_seed(tenant, plan_pages)
        generation_input = {"model": "mock", "inputTokens": 0, "outputTokens": 0}
        status = "mock_seed_created"

    db.add(
        AIGeneration(tenant_id=tenant_id, kind=AIGenerationKind.CLAUDE_SEED.value, input=generation_input, output=seed)
    )
    _, queued = await _enqueue_next_stage(
        db,
        source_job=job,
        tenant_id=tenant_id,
        job_type=JobType.IMPORT_SEED.value,
        payload={"seed": seed},
    )
    return {"status": status, "nextJob": JobType.IMPORT_SEED.value, "nextJobQueued": queued}


async def handle_import_seed(job: Job, db: AsyncSession) -> dict[str, Any]:
    tenant_id = _tenant_id_from_payload(job)
    tenant = await _get_tenant(db, tenant_id)

    seed = (job.payload or {}).get("seed")
    if not seed:
        generation = await db.scalar(
            select(AIGeneration)
            .where(
                AIGeneration.tenant_id == tenant_id,
                AIGeneration.kind == AIGenerationKind.CLAUDE_SEED.value,
            )
            .order_by(AIGeneration.created_at.desc())
            .limit(1)
        )
        if generation is None:
            raise PermanentJobError(f"No seed generation found for tenant {tenant_id}")
        seed = generation.output

    errors = validate_seed_for_import(seed)
    if errors:
        raise PermanentJobError(f"Seed rejected for tenant {tenant_id}: {'; '.join(errors)}")

    summary = await db.run_sync(import_seed, tenant_id, seed)
    # Stays in review until approve_site moves it to live.
    tenant.status = TenantStatus.PENDING_REVIEW.value
    logger.info("seed_imported tenant_id=%s pages=%s", tenant_id, summary["pages"])
    return {"status": "seed_imported", "tenantStatus": TenantStatus.PENDING_REVIEW.value, **summary}


def _site_url(tenant: Tenant) -> str:
    return f"https://{tenant.business_slug}.{settings.tenant_site_base_domain}"


async def handle_send_email(job: Job, db: AsyncSession) -> dict[str, Any]:
    tenant_id = _tenant_id_from_payload(job)
    payload = job.payload or {}
    template_name = str(payload.get("template") or "")

    if not is_resend_configured():
        logger.warning("email_skipped tenant_id=%s template=%s reason=resend_not_configured", tenant_id, template_name)
        return {"status": "email_skipped", "reason": "resend_not_configured"}

    tenant = await _get_tenant(db, tenant_id)
    recipient = payload.get("to") or tenant.contact_email
    if not recipient:
        logger.warning("email_skipped tenant_id=%s template=%s reason=no_recipient", tenant_id, template_name)
        return {"status": "email_skipped", "reason": "no_recipient"}

    template_data = {
        "businessName": tenant.business_name,
        "dashboardUrl": f"{settings.public_app_url.rstrip('/')}/portal/dashboard",
        "siteUrl": _site_url(tenant),
        **(payload.get("data") or {}),
    }
    rendered = render_email(template_name, template_data)
    if rendered is None:
        raise PermanentJobError(f"Unknown email template: {template_name}")

    await db.commit()
    sent = await send_email(to=recipient, subject=rendered.subject, html=rendered.html, text=rendered.text)
    db.add(
        EmailLog(
            tenant_id=tenant_id,
            recipient_email=recipient,
            subject=rendered.subject,
            template=template_name,
            status="sent" if sent else "failed",
            provider_message_id=sent.provider_message_id if sent else None,
        )
    )
    return {"status": "email_sent", "template": template_name, "to": recipient}


def _domain_id_from_payload(job: Job) -> str:
    domain_id = (job.payload or {}).get("domainId")
    if not domain_id:
        raise PermanentJobError(f"Job {job.id} payload has no domainId")
    return str(domain_id)


async def handle_verify_dns(job: Job, db: AsyncSession) -> dict[str, Any]:
    domain_id = _domain_id_from_payload(job)
    logger.info("dns_verification_checked domain_id=%s", domain_id)
    return {"status": "dns_checked", "domainId": domain_id}


async def handle_provision_ssl(job: Job, db: AsyncSession) -> dict[str, Any]:
    domain_id = _domain_id_from_payload(job)
    logger.info("ssl_provisioning_requested domain_id=%s", domain_id)
    return {"status": "ssl_provisioned", "domainId": domain_id}


JOB_HANDLER_SPECS: list[HandlerSpec] = [
    HandlerSpec(
        JobType.AI_GENERATE_SPEC.value,
        handle_ai_generate_spec,
        redelivery_safe=False,
        redelivery_note="Calls the model again and stores another spec row; the seed stage is not queued twice.",
    ),
    HandlerSpec(
        JobType.AI_GENERATE_SEED.value,
        handle_ai_generate_seed,
        redelivery_safe=False,
        redelivery_note="Calls the model again and logs another generation; the import stage is not queued twice.",
    ),
    HandlerSpec(
        JobType.IMPORT_SEED.value,
        handle_import_seed,
        redelivery_safe=True,
        redelivery_note="Pages are deleted and recreated from the same seed, so a repeat converges.",
    ),
    HandlerSpec(
        JobType.SEND_EMAIL.value,
        handle_send_email,
        redelivery_safe=False,
        redelivery_note="Sends the email again.",
    ),
    HandlerSpec(
        JobType.VERIFY_DNS.value,
        handle_verify_dns,
        redelivery_safe=True,
        redelivery_note="Read-only check.",
    ),
    HandlerSpec(
        JobType.PROVISION_SSL.value,
        handle_provision_ssl,
        redelivery_safe=True,
        redelivery_note="Requesting a certificate for an already provisioned domain is a no-op.",
    ),
]

JOB_HANDLERS = handlers_from_specs(JOB_HANDLER_SPECS)
