import logging
from datetime import UTC, datetime
from functools import lru_cache

from redis import Redis
from redis.exceptions import RedisError

from paygsite.core.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    """Process-wide client; redis-py pools connections behind it."""
    return Redis.from_url(settings.cache_redis_url, decode_responses=True)


def write_worker_heartbeat(redis_client: Redis | None = None) -> str | None:
    """Refresh the worker liveness key read by /health. Returns the timestamp written, or None on Redis failure."""
    now = datetime.now(UTC).isoformat()
    try:
        client = redis_client or get_redis_client()
        client.set(
            settings.worker_heartbeat_key,
            now,
            ex=max(15, settings.worker_heartbeat_ttl_seconds),
        )
    except RedisError:
        logger.warning("worker_heartbeat_write_failed key=%s", settings.worker_heartbeat_key, exc_info=True)
        return None
    return now


def read_worker_heartbeat(redis_client: Redis | None = None) -> str | None:
    client = redis_client or get_redis_client()
    return client.get(settings.worker_heartbeat_key)
