"""
Thin Redis wrapper shared by the read cache, the trial sweep lock and the
health checks.

Redis is optional: when it is unreachable at import time, or a call fails later,
reads miss, writes report False and locks are granted, so callers fall through
to the database.
"""
import json
import logging
from typing import Any, Callable, Optional, TypeVar

import redis

from app.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _connect() -> Optional[redis.Redis]:
    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable, caching disabled: {e}")
        return None
    logger.info("Connected to Redis")
    return client


redis_client = _connect()


class CacheManager:
    def __init__(self, client: Optional[Any] = None):
        self.client = client if client is not None else redis_client

    def _call(self, op: str, key: str, fn: Callable[[Any], T], fallback: T) -> T:
        if not self.client:
            return fallback
        try:
            return fn(self.client)
        except Exception as e:
            logger.error(f"Cache {op} failed for {key}: {e}")
            return fallback

    def get(self, key: str) -> Optional[Any]:
        def load(c):
            raw = c.get(key)
            return json.loads(raw) if raw else None

        return self._call("get", key, load, None)

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Store `value` as JSON for `ttl` seconds."""
        payload = json.dumps(value, default=str)

        def store(c):
            c.setex(key, ttl, payload)
            return True

        return self._call("set", key, store, False)

    def delete(self, key: str) -> bool:
        def drop(c):
            c.delete(key)
            return True

        return self._call("delete", key, drop, False)

    def get_int(self, key: str, default: int = 0) -> int:
        raw = self._call("read", key, lambda c: c.get(key), None)
        return int(raw) if raw is not None else default

    def incr(self, key: str) -> Optional[int]:
        return self._call("incr", key, lambda c: int(c.incr(key)), None)

    def acquire_lock(self, key: str, owner: str, ttl: int) -> bool:
        """SET NX EX. Granted when Redis is unavailable, so single-process setups keep working."""
        return self._call("lock", key, lambda c: bool(c.set(key, owner, nx=True, ex=ttl)), True)

    def ping(self) -> bool:
        """Unlike the other calls, connection errors propagate to the caller."""
        if not self.client:
            return False
        self.client.ping()
        return True


cache = CacheManager()
