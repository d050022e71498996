import logging

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from paygsite.application.jobs.queue import get_queue_stats
from paygsite.infrastructure.cache.redis_client import read_worker_heartbeat
from paygsite.infrastructure.db.session import SessionLocal
from paygsite.infrastructure.observability.metrics import metrics_response

logger = logging.getLogger(__name__)

router = APIRouter()


def _queue_snapshot() -> dict[str, int] | None:
    try:
        with SessionLocal() as db:
            return get_queue_stats(db)
    except SQLAlchemyError:
        logger.warning("health_queue_stats_failed", exc_info=True)
        return None


def _worker_snapshot() -> tuple[str, str | None]:
    try:
        last_beat = read_worker_heartbeat()
    except RedisError:
        return "down", None
    return "up", last_beat


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check() -> dict:
    queue = _queue_snapshot()
    redis_status, last_heartbeat = _worker_snapshot()
    worker_alive = last_heartbeat is not None

    healthy = queue is not None and redis_status == "up" and worker_alive
    return {
        "status": "ok" if healthy else "degraded",
        "services": {
            "database": "up" if queue is not None else "down",
            "redis": redis_status,
            "worker_alive": worker_alive,
            "worker_last_heartbeat": last_heartbeat,
        },
        "queue": queue,
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(response: Response) -> dict:
    # Only the job store gates readiness.
    if _queue_snapshot() is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_response()
