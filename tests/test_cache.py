"""
Tests for caching functionality.
"""
import pytest

from app.services.cache_service import CacheService
from app.utils.cache import CacheManager
from tests.helpers import BrokenRedis, FakeRedis


@pytest.mark.unit
class TestCacheManager:
    """Test cache manager functionality."""

    def test_set_and_get(self):
        cache_manager = CacheManager(client=FakeRedis())

        assert cache_manager.set("test_key", {"data": "test_value"}, ttl=60) is True
        assert cache_manager.get("test_key") == {"data": "test_value"}

    def test_get_nonexistent_key(self):
        assert CacheManager(client=FakeRedis()).get("nonexistent_key") is None

    def test_delete_key(self):
        cache_manager = CacheManager(client=FakeRedis())
        cache_manager.set("delete_test", {"data": "value"})

        cache_manager.delete("delete_test")

        assert cache_manager.get("delete_test") is None

    def test_counters(self):
        cache_manager = CacheManager(client=FakeRedis())

        assert cache_manager.get_int("counter") == 0
        assert cache_manager.incr("counter") == 1
        assert cache_manager.incr("counter") == 2
        assert cache_manager.get_int("counter") == 2

    def test_lock_is_exclusive(self):
        cache_manager = CacheManager(client=FakeRedis())

        assert cache_manager.acquire_lock("lock:sweep", "worker-a", 60) is True
        assert cache_manager.acquire_lock("lock:sweep", "worker-b", 60) is False

    def test_unreachable_redis_degrades_to_pass_through(self):
        cache_manager = CacheManager(client=BrokenRedis())

        assert cache_manager.set("k", 1) is False
        assert cache_manager.get("k") is None
        assert cache_manager.delete("k") is False
        assert cache_manager.incr("k") is None
        assert cache_manager.get_int("k", default=7) == 7
        assert cache_manager.acquire_lock("lock", "me", 10) is True

    def test_ping_raises_when_unreachable(self):
        with pytest.raises(ConnectionError):
            CacheManager(client=BrokenRedis()).ping()


@pytest.mark.unit
class TestCacheService:
    """Versioned per-user keys."""

    def test_key_embeds_user_version(self, cache_service):
        assert cache_service.key("clients", "u1") == "clients:u1:v0"
        assert cache_service.key("follow-ups", "u1", "overdue", None) == "follow-ups:u1:v0:overdue"

    def test_get_or_set_calls_loader_once(self, cache_service):
        calls = []

        def loader():
            calls.append(1)
            return [{"id": 1}]

        first = cache_service.get_or_set("clients", "u1", loader, CacheService.CLIENTS_TTL)
        second = cache_service.get_or_set("clients", "u1", loader, CacheService.CLIENTS_TTL)

        assert first == second == [{"id": 1}]
        assert len(calls) == 1

    def test_invalidate_moves_to_new_version(self, cache_service):
        cache_service.get_or_set("clients", "u1", lambda: ["old"], 60)

        assert cache_service.invalidate_user("u1") == 1
        assert cache_service.get_or_set("clients", "u1", lambda: ["new"], 60) == ["new"]

    def test_invalidation_is_per_user(self, cache_service):
        cache_service.get_or_set("clients", "u2", lambda: ["theirs"], 60)

        cache_service.invalidate_user("u1")

        assert cache_service.get_or_set("clients", "u2", lambda: ["reloaded"], 60) == ["theirs"]

    def test_none_is_not_cached(self, cache_service, fake_redis):
        cache_service.get_or_set("stats", "u1", lambda: None, 60)
        assert fake_redis.store == {}

    def test_without_redis_loader_always_runs(self):
        service = CacheService(CacheManager(client=BrokenRedis()))
        values = iter([1, 2])

        assert service.get_or_set("stats", "u1", lambda: next(values), 60) == 1
        assert service.get_or_set("stats", "u1", lambda: next(values), 60) == 2
