from fastapi.testclient import TestClient
from redis.exceptions import RedisError
from sqlalchemy.exc import OperationalError

from main import app
from paygsite.infrastructure.cache import redis_client
from paygsite.interfaces.api import health


class _StatsSession:
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


def _healthy_store(monkeypatch) -> None:
    monkeypatch.setattr(health, "SessionLocal", _StatsSession)
    monkeypatch.setattr(
        health,
        "get_queue_stats",
        lambda db: {"pending": 2, "running": 1, "completed": 0, "failed": 0, "dead": 0},
    )


def test_health_reports_queue_and_worker_heartbeat(monkeypatch):
    _healthy_store(monkeypatch)
    monkeypatch.setattr(health, "read_worker_heartbeat", lambda: "2026-01-01T00:00:00+00:00")

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"]["worker_alive"] is True
    assert body["queue"]["pending"] == 2


def test_health_degrades_when_redis_is_down(monkeypatch):
    _healthy_store(monkeypatch)

    def broken_heartbeat():
        raise RedisError("connection refused")

    monkeypatch.setattr(health, "read_worker_heartbeat", broken_heartbeat)

    with TestClient(app) as client:
        body = client.get("/health").json()
        ready = client.get("/ready")

    assert body["status"] == "degraded"
    assert body["services"]["redis"] == "down"
    assert ready.status_code == 200


def test_ready_fails_without_job_store(monkeypatch):
    def broken_stats(db):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(health, "SessionLocal", _StatsSession)
    monkeypatch.setattr(health, "get_queue_stats", broken_stats)

    with TestClient(app) as client:
        response = client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "not_ready"}


def test_metrics_exposes_job_counters():
    with TestClient(app) as client:
        response = client.get("/metrics")
    assert response.status_code == 200
    assert "jobs_claimed_total" in response.text


def test_redis_client_is_shared_across_heartbeats():
    assert redis_client.get_redis_client() is redis_client.get_redis_client()
