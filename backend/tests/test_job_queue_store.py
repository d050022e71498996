import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, delete, text
from sqlalchemy.orm import sessionmaker

from paygsite.application.jobs.errors import JobNotFoundError, JobStateError
from paygsite.application.jobs.queue import (
    STALE_JOB_ERROR,
    claim_job,
    cleanup_old_jobs,
    complete_job,
    create_job,
    delete_job,
    fail_job,
    get_dead_jobs,
    get_job,
    get_jobs_for_tenant,
    get_queue_stats,
    requeue_stale_jobs,
    retry_dead_job,
)
from paygsite.domain import models  # noqa: F401
from paygsite.domain.models.job import Job, JobStatus
from paygsite.domain.models.tenant import Tenant
from paygsite.infrastructure.db.base import Base

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", os.getenv("DATABASE_URL", ""))


@pytest.fixture(scope="session")
def db_engine():
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL or DATABASE_URL is required for integration tests")

    engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        pytest.skip(f"Database unavailable for integration tests: {exc}")

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    session.execute(delete(Job))
    session.commit()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _tenant(db_session) -> Tenant:
    tenant = Tenant(business_name="Queue Co", business_slug=f"queue-co-{uuid4().hex[:8]}", plan_pages=1)
    db_session.add(tenant)
    db_session.flush()
    return tenant


def test_create_job_defaults(db_session):
    tenant = _tenant(db_session)
    job = create_job(db_session, tenant_id=tenant.id, job_type="send_email", payload={"template": "welcome"})
    db_session.commit()

    stored = get_job(db_session, job.id)
    assert stored.status == JobStatus.PENDING.value
    assert stored.attempts == 0
    assert stored.payload == {"template": "welcome", "tenantId": str(tenant.id)}
    assert stored.started_at is None


def test_claim_returns_none_when_queue_empty(db_session):
    assert claim_job(db_session) is None


def test_claim_is_fifo_by_creation_time(db_session):
    first = create_job(db_session, tenant_id=None, job_type="verify_dns")
    second = create_job(db_session, tenant_id=None, job_type="verify_dns")
    db_session.commit()

    claimed = claim_job(db_session)
    db_session.commit()
    assert claimed.id == first.id
    assert claimed.status == JobStatus.RUNNING.value
    assert claimed.attempts == 1
    assert claimed.started_at is not None

    claimed_next = claim_job(db_session)
    db_session.commit()
    assert claimed_next.id == second.id


def test_claim_respects_run_at(db_session):
    create_job(
        db_session,
        tenant_id=None,
        job_type="verify_dns",
        run_at=datetime.now(UTC) + timedelta(minutes=10),
    )
    db_session.commit()
    assert claim_job(db_session) is None


def test_claim_filters_by_job_type(db_session):
    create_job(db_session, tenant_id=None, job_type="verify_dns")
    wanted = create_job(db_session, tenant_id=None, job_type="send_email")
    db_session.commit()

    claimed = claim_job(db_session, ["send_email"])
    db_session.commit()
    assert claimed.id == wanted.id


def test_concurrent_claims_never_share_a_job(db_session, session_factory):
    job_ids = {create_job(db_session, tenant_id=None, job_type="import_seed").id for _ in range(20)}
    db_session.commit()
    barrier = threading.Barrier(8)

    def drain() -> list:
        claimed = []
        barrier.wait()
        with session_factory() as session:
            while True:
                job = claim_job(session)
                if job is None:
                    session.commit()
                    return claimed
                claimed.append(job.id)
                session.commit()

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(lambda _: drain(), range(8)))

    claimed_ids = [job_id for batch in results for job_id in batch]
    assert len(claimed_ids) == len(set(claimed_ids))
    assert set(claimed_ids) == job_ids


def test_complete_job_stores_result(db_session):
    create_job(db_session, tenant_id=None, job_type="verify_dns")
    db_session.commit()
    claimed = claim_job(db_session)
    complete_job(db_session, claimed.id, {"status": "dns_checked"})
    db_session.commit()

    stored = get_job(db_session, claimed.id)
    assert stored.status == JobStatus.COMPLETED.value
    assert stored.result == {"status": "dns_checked"}
    assert stored.completed_at is not None


def test_fail_job_schedules_backoff(db_session):
    create_job(db_session, tenant_id=None, job_type="send_email")
    db_session.commit()
    claimed = claim_job(db_session)
    before = datetime.now(UTC)
    failed = fail_job(db_session, claimed.id, "boom", claimed.attempts)
    db_session.commit()

    assert failed.status == JobStatus.PENDING.value
    assert failed.last_error == "boom"
    assert before + timedelta(seconds=29) <= failed.run_at <= datetime.now(UTC) + timedelta(seconds=31)
    assert claim_job(db_session) is None


def test_fourth_failure_dead_letters(db_session):
    job = create_job(db_session, tenant_id=None, job_type="send_email")
    job.attempts = 3
    db_session.commit()

    claimed = claim_job(db_session)
    assert claimed.attempts == 4
    dead = fail_job(db_session, claimed.id, "still failing", claimed.attempts)
    db_session.commit()

    assert dead.status == JobStatus.DEAD.value
    assert dead.completed_at is not None
    assert [item.id for item in get_dead_jobs(db_session)] == [job.id]


def test_permanent_failure_dead_letters_on_first_attempt(db_session):
    create_job(db_session, tenant_id=None, job_type="import_seed")
    db_session.commit()
    claimed = claim_job(db_session)
    dead = fail_job(db_session, claimed.id, "bad seed", claimed.attempts, permanent=True)
    db_session.commit()
    assert dead.status == JobStatus.DEAD.value
    assert dead.attempts == 1


def test_retry_dead_job_resets_state(db_session):
    job = create_job(db_session, tenant_id=None, job_type="send_email", payload={"template": "welcome"})
    job.attempts = 3
    db_session.commit()
    claimed = claim_job(db_session)
    fail_job(db_session, claimed.id, "boom", claimed.attempts)
    db_session.commit()

    retried = retry_dead_job(db_session, job.id, payload={"template": "site_ready"})
    db_session.commit()
    assert retried.status == JobStatus.PENDING.value
    assert retried.attempts == 0
    assert retried.last_error is None
    assert retried.completed_at is None
    assert retried.payload == {"template": "site_ready"}

    reclaimed = claim_job(db_session)
    db_session.commit()
    assert reclaimed.id == job.id


def test_retry_rejects_jobs_that_are_not_dead(db_session):
    job = create_job(db_session, tenant_id=None, job_type="send_email")
    db_session.commit()
    with pytest.raises(JobStateError):
        retry_dead_job(db_session, job.id)
    with pytest.raises(JobNotFoundError):
        retry_dead_job(db_session, uuid4())


def test_queue_stats_are_zero_filled(db_session):
    create_job(db_session, tenant_id=None, job_type="send_email")
    create_job(db_session, tenant_id=None, job_type="send_email")
    db_session.commit()
    claim_job(db_session)
    db_session.commit()

    assert get_queue_stats(db_session) == {
        "pending": 1,
        "running": 1,
        "completed": 0,
        "failed": 0,
        "dead": 0,
    }


def test_jobs_for_tenant_newest_first_with_filters(db_session):
    tenant = _tenant(db_session)
    other = _tenant(db_session)
    older = create_job(db_session, tenant_id=tenant.id, job_type="ai_generate_spec")
    newer = create_job(db_session, tenant_id=tenant.id, job_type="send_email")
    create_job(db_session, tenant_id=other.id, job_type="send_email")
    db_session.commit()

    assert [job.id for job in get_jobs_for_tenant(db_session, tenant.id)] == [newer.id, older.id]
    assert [job.id for job in get_jobs_for_tenant(db_session, tenant.id, job_type="send_email")] == [newer.id]
    assert get_jobs_for_tenant(db_session, tenant.id, status=JobStatus.DEAD.value) == []
    assert len(get_jobs_for_tenant(db_session, tenant.id, limit=1)) == 1


def test_requeue_stale_jobs_routes_through_failure_path(db_session):
    create_job(db_session, tenant_id=None, job_type="ai_generate_seed")
    db_session.commit()
    claimed = claim_job(db_session)
    claimed.started_at = datetime.now(UTC) - timedelta(hours=2)
    db_session.commit()

    requeued = requeue_stale_jobs(db_session, stale_after_seconds=3600)
    db_session.commit()
    assert [job.id for job in requeued] == [claimed.id]

    stored = get_job(db_session, claimed.id)
    assert stored.status == JobStatus.PENDING.value
    assert stored.last_error == STALE_JOB_ERROR
    assert requeue_stale_jobs(db_session, stale_after_seconds=3600) == []


def test_delete_job_guards_status(db_session):
    pending = create_job(db_session, tenant_id=None, job_type="verify_dns")
    db_session.commit()
    with pytest.raises(JobStateError):
        delete_job(db_session, pending.id)

    claimed = claim_job(db_session)
    complete_job(db_session, claimed.id)
    db_session.commit()
    delete_job(db_session, claimed.id)
    db_session.commit()
    with pytest.raises(JobNotFoundError):
        get_job(db_session, claimed.id)


def test_cleanup_removes_only_old_completed_jobs(db_session):
    old = create_job(db_session, tenant_id=None, job_type="verify_dns")
    old_id = old.id
    recent = create_job(db_session, tenant_id=None, job_type="verify_dns")
    dead = create_job(db_session, tenant_id=None, job_type="verify_dns")
    old.status = JobStatus.COMPLETED.value
    old.completed_at = datetime.now(UTC) - timedelta(days=45)
    recent.status = JobStatus.COMPLETED.value
    recent.completed_at = datetime.now(UTC) - timedelta(days=1)
    dead.status = JobStatus.DEAD.value
    dead.completed_at = datetime.now(UTC) - timedelta(days=45)
    db_session.commit()

    assert cleanup_old_jobs(db_session, older_than_days=30) == 1
    db_session.commit()
    with pytest.raises(JobNotFoundError):
        get_job(db_session, old_id)
    assert get_queue_stats(db_session)["completed"] == 1
    assert get_queue_stats(db_session)["dead"] == 1
