import asyncio
import threading
import time
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from paygsite.application.jobs import worker as worker_module
from paygsite.application.jobs.errors import PermanentJobError
from paygsite.application.jobs.queue import compute_backoff_seconds, is_retry_exhausted
from paygsite.application.jobs.worker import JobWorker, WorkerOptions, create_worker


class FakeSession:
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    def refresh(self, instance) -> None:
        pass


class FakeAsyncSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def commit(self) -> None:
        pass

    async def rollback(self) -> None:
        pass

    async def run_sync(self, fn, *args, **kwargs):
        return fn(self, *args, **kwargs)


class FakeStore:
    """In-memory stand-in for the queue functions the worker calls."""

    def __init__(self) -> None:
        self.jobs: dict = {}
        self.claim_failures = 0
        self.slow_failure_seconds = 0.0
        self._lock = threading.Lock()

    def add(self, job_type: str, attempts: int = 0) -> SimpleNamespace:
        job = SimpleNamespace(
            id=uuid4(),
            tenant_id=None,
            job_type=job_type,
            status="pending",
            payload={},
            attempts=attempts,
            run_at=None,
            started_at=None,
            completed_at=None,
            last_error=None,
            result=None,
        )
        self.jobs[job.id] = job
        return job

    def claim(self, db, job_types=None):
        with self._lock:
            if self.claim_failures:
                self.claim_failures -= 1
                raise RuntimeError("database unavailable")
            now = datetime.now(UTC)
            for job in self.jobs.values():
                if job.status != "pending" or (job.run_at is not None and job.run_at > now):
                    continue
                if job_types and job.job_type not in job_types:
                    continue
                job.status = "running"
                job.started_at = now
                job.attempts += 1
                return job
            return None

    def complete(self, db, job_id, result=None):
        job = self.jobs[job_id]
        job.status = "completed"
        job.completed_at = datetime.now(UTC)
        job.result = result
        return job

    def fail(self, db, job_id, error, attempts_so_far, *, permanent=False):
        if self.slow_failure_seconds:
            time.sleep(self.slow_failure_seconds)
        job = self.jobs[job_id]
        job.last_error = error
        if permanent or is_retry_exhausted(attempts_so_far):
            job.status = "dead"
            job.completed_at = datetime.now(UTC)
        else:
            job.status = "pending"
            job.run_at = datetime.now(UTC) + timedelta(seconds=compute_backoff_seconds(attempts_so_far))
        return job


@pytest.fixture
def store(monkeypatch):
    fake_store = FakeStore()
    monkeypatch.setattr(worker_module, "claim_job", fake_store.claim)
    monkeypatch.setattr(worker_module, "complete_job", fake_store.complete)
    monkeypatch.setattr(worker_module, "fail_job", fake_store.fail)
    return fake_store


def _worker(**overrides) -> JobWorker:
    options = WorkerOptions(poll_interval=0.01, busy_interval=0.001, concurrency=1, verbose=False)
    for key, value in overrides.items():
        setattr(options, key, value)
    return JobWorker(
        options,
        session_factory=FakeSession,
        async_session_factory=FakeAsyncSession,
        heartbeat=lambda: None,
    )


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


def test_worker_rejects_concurrency_below_one() -> None:
    with pytest.raises(ValueError):
        JobWorker(
            WorkerOptions(concurrency=0),
            session_factory=FakeSession,
            async_session_factory=FakeAsyncSession,
            heartbeat=lambda: None,
        )


def test_create_worker_registers_handlers() -> None:
    async def handler(job, db):
        return None

    worker = create_worker(
        {"send_email": handler, "verify_dns": handler},
        WorkerOptions(verbose=False),
        session_factory=FakeSession,
        async_session_factory=FakeAsyncSession,
        heartbeat=lambda: None,
    )
    assert worker.registered_job_types == ["send_email", "verify_dns"]


def test_completed_job_stores_handler_result(store: FakeStore) -> None:
    job = store.add("verify_dns")

    async def handler(claimed, db):
        return {"status": "dns_checked"}

    async def scenario() -> None:
        worker = _worker().register("verify_dns", handler)
        await worker.start()
        await _wait_until(lambda: job.status == "completed")
        await worker.stop()

    asyncio.run(scenario())
    assert job.attempts == 1
    assert job.result == {"status": "dns_checked"}


def test_non_mapping_result_is_discarded(store: FakeStore) -> None:
    job = store.add("verify_dns")

    async def handler(claimed, db):
        return "done"

    async def scenario() -> None:
        worker = _worker().register("verify_dns", handler)
        await worker.start()
        await _wait_until(lambda: job.status == "completed")
        await worker.stop()

    asyncio.run(scenario())
    assert job.result is None


def test_concurrency_bound_holds_jobs_pending_until_a_slot_frees(store: FakeStore) -> None:
    jobs = [store.add("import_seed") for _ in range(5)]
    gates: dict = {}

    async def handler(claimed, db):
        await gates[claimed.id].wait()
        return None

    def count(status: str) -> int:
        return sum(1 for job in jobs if job.status == status)

    async def scenario() -> None:
        for job in jobs:
            gates[job.id] = asyncio.Event()
        worker = _worker(concurrency=2).register("import_seed", handler)
        await worker.start()

        await _wait_until(lambda: count("running") == 2)
        await asyncio.sleep(0.05)
        assert count("running") == 2
        assert count("pending") == 3
        assert worker.active_jobs == 2

        first = next(job for job in jobs if job.status == "running")
        gates[first.id].set()
        await _wait_until(lambda: first.status == "completed" and count("running") == 2)
        await asyncio.sleep(0.05)
        assert count("completed") == 1
        assert count("running") == 2
        assert count("pending") == 2

        for gate in gates.values():
            gate.set()
        await _wait_until(lambda: count("completed") == 5)
        await worker.stop()

    asyncio.run(scenario())


async def _tick(stamps: list[float], duration: float) -> dict:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration
    while loop.time() < deadline:
        stamps.append(loop.time())
        await asyncio.sleep(0.01)
    return {"status": "ticked"}


def _max_gap(stamps: list[float]) -> float:
    return max(later - earlier for earlier, later in zip(stamps, stamps[1:]))


def test_slow_failure_write_does_not_stall_other_handlers(store: FakeStore) -> None:
    ticker = store.add("verify_dns")
    failing = store.add("send_email")
    store.slow_failure_seconds = 0.5
    stamps: list[float] = []

    async def tick_handler(claimed, db):
        return await _tick(stamps, 0.8)

    async def failing_handler(claimed, db):
        raise RuntimeError("Resend API error 502")

    async def scenario() -> None:
        worker = _worker(concurrency=2)
        worker.register("verify_dns", tick_handler).register("send_email", failing_handler)
        await worker.start()
        await _wait_until(lambda: ticker.status == "completed" and failing.last_error is not None, timeout=3.0)
        await worker.stop()

    asyncio.run(scenario())
    assert failing.status == "pending"
    assert len(stamps) > 10
    assert _max_gap(stamps) < 0.2


def test_slow_commit_does_not_stall_other_handlers(store: FakeStore) -> None:
    ticker = store.add("verify_dns")
    slow = store.add("provision_ssl")
    stamps: list[float] = []

    class SlowCommitSession(FakeAsyncSession):
        def __init__(self) -> None:
            self.job_id = None

        async def run_sync(self, fn, *args, **kwargs):
            self.job_id = args[0] if args else None
            return await super().run_sync(fn, *args, **kwargs)

        async def commit(self) -> None:
            if self.job_id == slow.id:
                await asyncio.sleep(0.5)

    async def tick_handler(claimed, db):
        return await _tick(stamps, 0.8)

    async def ssl_handler(claimed, db):
        return {"status": "ssl_provisioned"}

    async def scenario() -> None:
        options = WorkerOptions(poll_interval=0.01, busy_interval=0.001, concurrency=2, verbose=False)
        worker = JobWorker(
            options,
            session_factory=FakeSession,
            async_session_factory=SlowCommitSession,
            heartbeat=lambda: None,
        )
        worker.register("verify_dns", tick_handler).register("provision_ssl", ssl_handler)
        await worker.start()
        await _wait_until(lambda: ticker.status == "completed" and slow.status == "completed", timeout=3.0)
        await worker.stop()

    asyncio.run(scenario())
    assert len(stamps) > 10
    assert _max_gap(stamps) < 0.2


def test_stop_waits_for_in_flight_handler_and_stops_claiming(store: FakeStore) -> None:
    first = store.add("ai_generate_seed")
    release = None
    started = None

    async def handler(claimed, db):
        started.set()
        await release.wait()
        return {"status": "seed_generated"}

    async def scenario() -> SimpleNamespace:
        nonlocal release, started
        release = asyncio.Event()
        started = asyncio.Event()
        worker = _worker().register("ai_generate_seed", handler)
        await worker.start()
        await asyncio.wait_for(started.wait(), 2.0)

        stop_task = asyncio.create_task(worker.stop())
        await asyncio.sleep(0.05)
        assert not stop_task.done()
        assert worker.running is False

        late = store.add("ai_generate_seed")
        release.set()
        await asyncio.wait_for(stop_task, 2.0)
        assert worker.active_jobs == 0
        return late

    late = asyncio.run(scenario())
    assert first.status == "completed"
    assert late.status == "pending"
    assert late.attempts == 0


def test_stop_interrupts_idle_poll_sleep(store: FakeStore) -> None:
    async def scenario() -> None:
        worker = _worker(poll_interval=30.0)
        await worker.start()
        await asyncio.sleep(0.02)
        await asyncio.wait_for(worker.stop(), 1.0)

    asyncio.run(scenario())


def test_missing_handler_dead_letters_on_final_attempt(store: FakeStore) -> None:
    job = store.add("mystery", attempts=3)

    async def scenario() -> None:
        worker = _worker()
        await worker.start()
        await _wait_until(lambda: job.status == "dead")
        assert worker.running is True
        await worker.stop()

    asyncio.run(scenario())
    assert job.attempts == 4
    assert job.last_error == "No handler registered for job type: mystery"


def test_missing_handler_schedules_retry_before_final_attempt(store: FakeStore) -> None:
    job = store.add("mystery")

    async def scenario() -> None:
        worker = _worker()
        await worker.start()
        await _wait_until(lambda: job.last_error is not None)
        await worker.stop()

    asyncio.run(scenario())
    assert job.status == "pending"
    assert job.attempts == 1
    assert job.run_at > datetime.now(UTC) + timedelta(seconds=25)


def test_handler_error_schedules_backoff_retry(store: FakeStore) -> None:
    job = store.add("send_email")

    async def handler(claimed, db):
        raise RuntimeError("Resend API error 502")

    async def scenario() -> None:
        worker = _worker().register("send_email", handler)
        await worker.start()
        await _wait_until(lambda: job.last_error is not None)
        await worker.stop()

    asyncio.run(scenario())
    assert job.status == "pending"
    assert job.last_error == "Resend API error 502"


def test_permanent_error_dead_letters_immediately(store: FakeStore) -> None:
    job = store.add("ai_generate_spec")

    async def handler(claimed, db):
        raise PermanentJobError("No onboarding submission found")

    async def scenario() -> None:
        worker = _worker().register("ai_generate_spec", handler)
        await worker.start()
        await _wait_until(lambda: job.status == "dead")
        await worker.stop()

    asyncio.run(scenario())
    assert job.attempts == 1
    assert job.last_error == "No onboarding submission found"


def test_claim_errors_do_not_stop_the_loop(store: FakeStore) -> None:
    store.claim_failures = 2
    job = store.add("provision_ssl")

    async def handler(claimed, db):
        return {"status": "ssl_provisioned"}

    async def scenario() -> None:
        worker = _worker().register("provision_ssl", handler)
        await worker.start()
        await _wait_until(lambda: job.status == "completed")
        await worker.stop()

    asyncio.run(scenario())
    assert store.claim_failures == 0


def test_job_type_filter_limits_claims(store: FakeStore) -> None:
    wanted = store.add("send_email")
    other = store.add("verify_dns")

    async def handler(claimed, db):
        return None

    async def scenario() -> None:
        worker = _worker(job_types=["send_email"])
        worker.register("send_email", handler).register("verify_dns", handler)
        await worker.start()
        await _wait_until(lambda: wanted.status == "completed")
        await asyncio.sleep(0.03)
        await worker.stop()

    asyncio.run(scenario())
    assert other.status == "pending"
