"""
Per-user response caching with version counters.

Every cached entry for a user embeds that user's current version in its key.
Writes bump the version, so earlier entries are simply never read again and
age out by TTL. No key scans are needed for invalidation.
"""
import logging
from typing import Any, Callable, Optional

from app.utils.cache import CacheManager, cache

logger = logging.getLogger(__name__)


class CacheService:
    """Versioned cache used by request handlers (injected via get_cache_service)."""

    # Cache TTL constants (in seconds)
    DASHBOARD_TTL = 300  # 5 minutes
    CLIENTS_TTL = 600  # 10 minutes
    FOLLOW_UPS_TTL = 180  # 3 minutes
    STATS_TTL = 900  # 15 minutes

    VERSION_KEY = "cache:version:{user_id}"

    def __init__(self, manager: Optional[CacheManager] = None):
        self.manager = manager or cache

    def user_version(self, user_id) -> int:
        return self.manager.get_int(self.VERSION_KEY.format(user_id=user_id))

    def key(self, namespace: str, user_id, *parts: Any) -> str:
        """Build `<namespace>:<user>:v<version>[:parts]`."""
        segments = [namespace, str(user_id), f"v{self.user_version(user_id)}"]
        segments.extend(str(p) for p in parts if p is not None)
        return ":".join(segments)

    def get_or_set(self, namespace: str, user_id, loader: Callable[[], Any], ttl: int, *parts: Any) -> Any:
        """Return the cached value for this user version, computing and storing it on a miss."""
        cache_key = self.key(namespace, user_id, *parts)
        cached_value = self.manager.get(cache_key)
        if cached_value is not None:
            logger.debug(f"Cache hit: {cache_key}")
            return cached_value

        logger.debug(f"Cache miss: {cache_key}")
        value = loader()
        if value is not None:
            self.manager.set(cache_key, value, ttl=ttl)
        return value

    def invalidate_user(self, user_id) -> Optional[int]:
        """Bump the user's version so all of their cached entries go stale at once."""
        version = self.manager.incr(self.VERSION_KEY.format(user_id=user_id))
        logger.debug(f"User cache version bumped: {user_id} -> {version}")
        return version


cache_service = CacheService()


def get_cache_service() -> CacheService:
    """FastAPI dependency; override in tests to inject a different backend."""
    return cache_service
