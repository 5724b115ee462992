"""
Tests for ResponseCache: TTL expiry, LRU eviction under a byte budget,
fetch-through coalescing, cancellation and stale fallback on rate limits.
"""

import asyncio
from datetime import timedelta

import pytest

from repohealth.adapters.base import NotFound, RateLimited
from repohealth.cache import CacheStats, FileStorage, ResponseCache
from repohealth.cache.response_cache import serialize


def payload(size: int) -> str:
    """A string value whose serialized form is exactly ``size`` bytes."""
    return "x" * (size - 2)


class TestGetSet:
    def test_miss_returns_default(self, clock):
        cache = ResponseCache(clock=clock)
        assert cache.get("missing") is None
        assert cache.get("missing", "fallback") == "fallback"
        assert cache.stats.misses == 2

    def test_set_then_get_round_trips_json(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("k", {"b": [1, 2], "a": None})
        assert cache.get("k") == {"a": None, "b": [1, 2]}
        assert cache.stats.hits == 1

    def test_size_is_utf8_length_of_compact_json(self, clock):
        cache = ResponseCache(clock=clock)
        entry = cache.set("k", {"name": "é"})
        assert serialize({"name": "é"}) == '{"name":"é"}'
        assert entry.size_bytes == len('{"name":"é"}'.encode("utf-8"))
        assert cache.total_bytes == entry.size_bytes

    def test_overwrite_replaces_size(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("k", payload(40))
        cache.set("k", payload(10))
        assert len(cache) == 1
        assert cache.total_bytes == 10

    def test_delete_and_clear(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_invalid_arguments_rejected(self):
        with pytest.raises(ValueError):
            ResponseCache(max_bytes=0)
        with pytest.raises(ValueError):
            ResponseCache(ttl=timedelta(0))


class TestExpiry:
    def test_entry_alive_before_ttl_and_gone_after(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=24), clock=clock)
        cache.set("k", "v")

        clock.advance(hours=23)
        assert cache.get("k") == "v"

        clock.advance(hours=2)
        assert cache.get("k") is None
        assert cache.peek("k") is None
        assert cache.stats.expirations == 1

    def test_entry_expires_exactly_at_ttl(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=1), clock=clock)
        cache.set("k", "v")
        clock.advance(hours=1)
        assert not cache.has("k")

    def test_has_does_not_refresh_recency(self, clock):
        cache = ResponseCache(clock=clock)
        entry = cache.set("k", "v")
        clock.advance(minutes=5)
        assert "k" in cache
        assert cache.peek("k").last_accessed_at == entry.last_accessed_at

    def test_get_refreshes_recency(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("k", "v")
        clock.advance(minutes=5)
        cache.get("k")
        assert cache.peek("k").last_accessed_at == clock()

    def test_set_sweeps_expired_entries(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=1), clock=clock)
        cache.set("old", "v")
        clock.advance(hours=2)
        cache.set("new", "v")
        assert cache.peek("old") is None
        assert len(cache) == 1

    def test_sweep_returns_removed_count(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=1), clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.advance(minutes=90)
        assert cache.sweep() == 2
        assert cache.sweep() == 0


class TestEviction:
    def test_least_recently_accessed_is_evicted(self, clock):
        cache = ResponseCache(max_bytes=100, clock=clock)
        cache.set("a", payload(40))
        clock.advance(seconds=1)
        cache.set("b", payload(40))
        clock.advance(seconds=1)
        cache.get("a")
        clock.advance(seconds=1)

        cache.set("c", payload(40))

        assert cache.has("a")
        assert not cache.has("b")
        assert cache.has("c")
        assert cache.total_bytes == 80
        assert cache.stats.evictions == 1

    def test_ties_broken_by_creation_time(self, clock):
        cache = ResponseCache(max_bytes=100, clock=clock)
        cache.set("first", payload(40))
        cache.set("second", payload(40))
        cache.set("third", payload(40))
        assert not cache.has("first")
        assert cache.has("second")

    def test_evicts_until_budget_holds(self, clock):
        cache = ResponseCache(max_bytes=100, clock=clock)
        for key in ("a", "b", "c", "d"):
            cache.set(key, payload(25))
            clock.advance(seconds=1)

        cache.set("big", payload(70))

        assert cache.total_bytes <= 100
        assert cache.has("big")
        assert cache.has("d")
        assert not cache.has("a")

    def test_oversized_entry_survives_until_next_write(self, clock):
        cache = ResponseCache(max_bytes=50, clock=clock)
        cache.set("huge", payload(120))
        assert cache.has("huge")
        assert cache.total_bytes == 120

        clock.advance(seconds=1)
        cache.set("small", payload(10))
        assert not cache.has("huge")
        assert cache.has("small")
        assert cache.total_bytes == 10

    def test_capacity_never_raises(self, clock):
        cache = ResponseCache(max_bytes=1, clock=clock)
        cache.set("k", payload(500))
        assert len(cache) == 1


class TestFetch:
    def test_miss_loads_and_caches(self, clock):
        cache = ResponseCache(clock=clock)
        calls = []

        async def loader():
            calls.append(1)
            return {"v": 1}

        async def scenario():
            first = await cache.fetch("k", loader)
            second = await cache.fetch("k", loader)
            return first, second

        first, second = asyncio.run(scenario())
        assert first.value == {"v": 1}
        assert first.from_cache is False
        assert second.from_cache is True
        assert len(calls) == 1

    def test_concurrent_requests_coalesce(self, clock):
        cache = ResponseCache(clock=clock)
        calls = []

        async def scenario():
            gate = asyncio.Event()

            async def loader():
                calls.append(1)
                await gate.wait()
                return [1, 2, 3]

            tasks = [asyncio.create_task(cache.fetch("k", loader)) for _ in range(3)]
            await asyncio.sleep(0)
            gate.set()
            return await asyncio.gather(*tasks)

        results = asyncio.run(scenario())
        assert [r.value for r in results] == [[1, 2, 3]] * 3
        assert len(calls) == 1
        assert cache.stats.coalesced == 2

    def test_cancelled_caller_does_not_abort_shared_load(self, clock):
        cache = ResponseCache(clock=clock)
        calls = []

        async def scenario():
            gate = asyncio.Event()

            async def loader():
                calls.append(1)
                await gate.wait()
                return "done"

            abandoned = asyncio.create_task(cache.fetch("k", loader))
            await asyncio.sleep(0)
            abandoned.cancel()
            with pytest.raises(asyncio.CancelledError):
                await abandoned

            gate.set()
            return await cache.fetch("k", loader)

        response = asyncio.run(scenario())
        assert response.value == "done"
        assert len(calls) == 1
        assert cache.get("k") == "done"

    def test_rate_limited_serves_stale_entry(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=24), clock=clock)
        cache.set("k", {"v": "old"})
        clock.advance(hours=25)

        async def loader():
            raise RateLimited(None)

        response = asyncio.run(cache.fetch("k", loader))
        assert response.value == {"v": "old"}
        assert response.stale is True
        assert cache.stats.stale_served == 1

    def test_rate_limited_without_entry_propagates(self, clock):
        cache = ResponseCache(clock=clock)

        async def loader():
            raise RateLimited(None)

        with pytest.raises(RateLimited):
            asyncio.run(cache.fetch("k", loader))

    def test_other_errors_do_not_fall_back(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=1), clock=clock)
        cache.set("k", "old")
        clock.advance(hours=2)

        async def loader():
            raise NotFound(None)

        with pytest.raises(NotFound):
            asyncio.run(cache.fetch("k", loader))

    def test_failed_load_is_retried_next_time(self, clock):
        cache = ResponseCache(clock=clock)
        attempts = []

        async def loader():
            attempts.append(1)
            if len(attempts) == 1:
                raise NotFound(None)
            return "ok"

        async def scenario():
            with pytest.raises(NotFound):
                await cache.fetch("k", loader)
            return await cache.fetch("k", loader)

        assert asyncio.run(scenario()).value == "ok"
        assert len(attempts) == 2

    def test_expired_entry_is_reloaded(self, clock):
        cache = ResponseCache(ttl=timedelta(hours=1), clock=clock)
        cache.set("k", "old")
        clock.advance(hours=2)

        async def loader():
            return "new"

        response = asyncio.run(cache.fetch("k", loader))
        assert response.value == "new"
        assert response.stale is False


class TestStats:
    def test_hit_rate(self):
        stats = CacheStats(hits=3, misses=1)
        assert stats.hit_rate == 0.75
        assert CacheStats().hit_rate == 0.0


class TestFileBackedCache:
    def test_entries_survive_a_new_cache_instance(self, tmp_path, clock):
        cache = ResponseCache(storage=FileStorage(tmp_path), clock=clock)
        cache.set("/repos/acme/widget", {"stars": 5})

        reopened = ResponseCache(storage=FileStorage(tmp_path), clock=clock)
        assert reopened.get("/repos/acme/widget") == {"stars": 5}
