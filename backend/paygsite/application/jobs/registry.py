from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from paygsite.domain.models.job import Job, JobType

JobResult = Mapping[str, Any] | None
JobHandler = Callable[[Job, AsyncSession], Awaitable[JobResult]]

# Introspection only: each pipeline handler enqueues its successor itself.
PIPELINE_NEXT_STAGE: dict[str, str | None] = {
    JobType.AI_GENERATE_SPEC.value: JobType.AI_GENERATE_SEED.value,
    JobType.AI_GENERATE_SEED.value: JobType.IMPORT_SEED.value,
    JobType.IMPORT_SEED.value: None,
    JobType.SEND_EMAIL.value: None,
    JobType.VERIFY_DNS.value: None,
    JobType.PROVISION_SSL.value: None,
}


@dataclass(frozen=True)
class HandlerSpec:
    job_type: str
    handler: JobHandler
    redelivery_safe: bool
    redelivery_note: str


def next_stage(job_type: str) -> str | None:
    return PIPELINE_NEXT_STAGE.get(str(job_type))


def pipeline_chain(start: str) -> list[str]:
    chain = [str(start)]
    current = next_stage(start)
    while current is not None and current not in chain:
        chain.append(current)
        current = next_stage(current)
    return chain


def build_idempotency_key(tenant_id: UUID | str, job_type: str, source_job_id: UUID | str) -> str:
    return f"{tenant_id}:{job_type}:{source_job_id}"


def handlers_from_specs(specs: list[HandlerSpec]) -> dict[str, JobHandler]:
    handlers: dict[str, JobHandler] = {}
    for spec in specs:
        if spec.job_type in handlers:
            raise ValueError(f"Duplicate handler registration for job type: {spec.job_type}")
        handlers[spec.job_type] = spec.handler
    return handlers
