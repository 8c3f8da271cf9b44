"""
Persistence port for email monitor state.

The monitor works entirely in memory; a store only lets counters and the
recent log window survive restarts. Store failures are logged by the caller
and never block sending.
"""
import json
import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

REDIS_KEY = "paynotify:email_monitor:state"


class MetricsStore(Protocol):
    async def load(self) -> Optional[dict]: ...

    async def save(self, snapshot: dict) -> None: ...


class InMemoryMetricsStore:
    """Default store. Keeps the last snapshot for the lifetime of the process."""

    def __init__(self):
        self._snapshot: Optional[dict] = None

    async def load(self) -> Optional[dict]:
        return json.loads(json.dumps(self._snapshot)) if self._snapshot else None

    async def save(self, snapshot: dict) -> None:
        self._snapshot = json.loads(json.dumps(snapshot, default=str))


class RedisMetricsStore:
    """Durable store for server deployments. One JSON document per deployment."""

    def __init__(self, redis, key: str = REDIS_KEY):
        self._redis = redis
        self._key = key

    async def load(self) -> Optional[dict]:
        raw = await self._redis.get(self._key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding unreadable email monitor snapshot in Redis")
            return None

    async def save(self, snapshot: dict) -> None:
        await self._redis.set(self._key, json.dumps(snapshot, default=str))


def build_metrics_store(backend: str, redis_url: str = "") -> Optional[MetricsStore]:
    """Store for the configured backend. Unknown backends degrade to in-memory."""
    if backend == "redis":
        try:
            import redis.asyncio as aioredis
            return RedisMetricsStore(aioredis.from_url(redis_url, decode_responses=True))
        except Exception as e:
            logger.warning("Redis metrics store unavailable, using memory: %s", str(e))
            return InMemoryMetricsStore()
    if backend != "memory":
        logger.warning("Unknown metrics backend %r, using memory", backend)
    return InMemoryMetricsStore()
