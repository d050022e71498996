from uuid import uuid4

import pytest

from paygsite.application.jobs.handlers import JOB_HANDLER_SPECS, JOB_HANDLERS
from paygsite.application.jobs.queue import (
    BACKOFF_SCHEDULE_SECONDS,
    MAX_ATTEMPTS,
    compute_backoff_seconds,
    is_retry_exhausted,
)
from paygsite.application.jobs.registry import (
    HandlerSpec,
    build_idempotency_key,
    handlers_from_specs,
    next_stage,
    pipeline_chain,
)
from paygsite.domain.models.job import JobType


def test_backoff_schedule_follows_attempt_number() -> None:
    assert [compute_backoff_seconds(attempt) for attempt in (1, 2, 3, 4)] == [30, 120, 480, 1800]


def test_backoff_clamps_outside_the_table() -> None:
    assert compute_backoff_seconds(0) == BACKOFF_SCHEDULE_SECONDS[0]
    assert compute_backoff_seconds(-3) == BACKOFF_SCHEDULE_SECONDS[0]
    assert compute_backoff_seconds(9) == BACKOFF_SCHEDULE_SECONDS[-1]


def test_retry_exhausted_at_max_attempts() -> None:
    assert MAX_ATTEMPTS == 4
    assert not is_retry_exhausted(3)
    assert is_retry_exhausted(4)
    assert is_retry_exhausted(5)


def test_pipeline_topology() -> None:
    assert pipeline_chain(JobType.AI_GENERATE_SPEC.value) == [
        "ai_generate_spec",
        "ai_generate_seed",
        "import_seed",
    ]
    assert next_stage(JobType.IMPORT_SEED.value) is None
    assert next_stage(JobType.SEND_EMAIL.value) is None
    assert next_stage("unknown") is None


def test_every_job_type_has_a_handler() -> None:
    assert set(JOB_HANDLERS) == {job_type.value for job_type in JobType}
    assert len(JOB_HANDLER_SPECS) == len(JobType)
    assert all(spec.redelivery_note for spec in JOB_HANDLER_SPECS)


def test_redelivery_declarations() -> None:
    declared = {spec.job_type: spec.redelivery_safe for spec in JOB_HANDLER_SPECS}
    assert declared["import_seed"] is True
    assert declared["send_email"] is False


def test_duplicate_handler_registration_rejected() -> None:
    async def handler(job, db):
        return None

    with pytest.raises(ValueError):
        handlers_from_specs(
            [
                HandlerSpec("send_email", handler, redelivery_safe=False, redelivery_note="a"),
                HandlerSpec("send_email", handler, redelivery_safe=False, redelivery_note="b"),
            ]
        )


def test_idempotency_key_format() -> None:
    tenant_id = uuid4()
    source_job_id = uuid4()
    assert build_idempotency_key(tenant_id, "import_seed", source_job_id) == f"{tenant_id}:import_seed:{source_job_id}"
