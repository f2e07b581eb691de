"""Unit tests for the persistent CacheStore."""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import pytest

from chainlab.caching import CacheStats, CacheStore


@dataclass(frozen=True)
class _Point:
    x: int
    y: int


class TestCacheStoreBasics:
    """get / set / etag semantics."""

    def test_missing_entry_returns_default(self, cache):
        """An unknown key is a miss."""
        assert cache.get("ns", "absent") is None
        assert cache.get("ns", "absent", default="fallback") == "fallback"
        assert cache.stats.misses == 2

    def test_set_then_get_with_matching_etag(self, cache):
        """A stored value is returned when the etag matches."""
        cache.set("ns", ("digest", "worker"), ("v1",), {"size": 42})
        assert cache.get("ns", ("digest", "worker"), ("v1",)) == {"size": 42}
        assert cache.stats.hits == 1

    def test_etag_mismatch_is_a_miss(self, cache):
        """A different etag turns the stored value into a miss."""
        cache.set("ns", "key", ("v1",), 1)
        assert cache.get("ns", "key", ("v2",)) is None
        assert cache.stats.misses == 1

    def test_namespaces_are_isolated(self, cache):
        """The same key in two namespaces refers to two entries."""
        cache.set("a", "key", None, "first")
        cache.set("b", "key", None, "second")
        assert cache.get("a", "key") == "first"
        assert cache.get("b", "key") == "second"

    def test_set_replaces_entry(self, cache):
        """Storing again under the same key overwrites value and etag."""
        cache.set("ns", "key", 1, "old")
        cache.set("ns", "key", 2, "new")
        assert cache.get("ns", "key", 1) is None
        assert cache.get("ns", "key", 2) == "new"

    def test_domain_values_round_trip(self, cache):
        """Nested containers, paths and dataclasses survive serialization."""
        value = {
            "points": [_Point(1, 2), _Point(3, 4)],
            "path": Path("/tmp/x.png"),
            "nested": ((1, 2.5), {"k": None}),
        }
        cache.set("ns", (_Point(0, 0), "tuple-key"), ("etag", 1), value)
        assert cache.get("ns", (_Point(0, 0), "tuple-key"), ("etag", 1)) == value

    def test_none_can_be_cached(self, cache):
        """A stored None is distinguishable from a miss through *default*."""
        cache.set("ns", "key", None, None)
        missing = object()
        assert cache.get("ns", "key", None, default=missing) is None


class TestGetOrCompute:
    """get_or_compute semantics."""

    def test_computes_once_then_hits(self, cache):
        """The compute function only runs on a miss."""
        calls = []

        def compute():
            calls.append(1)
            return 7

        assert cache.get_or_compute("ns", "key", "etag", compute) == 7
        assert cache.get_or_compute("ns", "key", "etag", compute) == 7
        assert len(calls) == 1
        assert cache.stats.computed == 1

    def test_recomputes_when_etag_changes(self, cache):
        """A new etag forces recomputation and replaces the stored etag."""
        cache.get_or_compute("ns", "key", 1, lambda: "first")
        assert cache.get_or_compute("ns", "key", 2, lambda: "second") == "second"
        assert cache.get("ns", "key", 2) == "second"
        assert cache.get("ns", "key", 1) is None

    def test_compute_errors_are_not_cached(self, cache):
        """A failing compute stores nothing."""

        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("ns", "key", None, boom)
        assert cache.get_or_compute("ns", "key", None, lambda: "ok") == "ok"

    def test_key_locks_released_after_compute(self, cache):
        """Locks exist only while a key is being computed."""
        seen_during_compute = []

        def compute(i):
            seen_during_compute.append(len(cache._locks))
            return i

        for i in range(50):
            cache.get_or_compute("difference", ("a", i), None, lambda i=i: compute(i))

        assert seen_during_compute == [1] * 50
        assert cache._locks == {}

    def test_nested_compute_releases_both_keys(self, cache):
        def outer():
            return cache.get_or_compute("alpha", "inner", None, lambda: 1) + 1

        assert cache.get_or_compute("difference", "outer", None, outer) == 2
        assert cache._locks == {}

    def test_lock_released_when_compute_fails(self, cache):
        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("ns", "key", None, boom)
        assert cache._locks == {}

    def test_concurrent_callers_compute_once(self, cache):
        """Threads asking for the same key share one computation."""
        calls = []

        def compute():
            calls.append(1)
            time.sleep(0.05)
            return "value"

        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = [
                executor.submit(cache.get_or_compute, "ns", "key", None, compute)
                for _ in range(4)
            ]
            results = [future.result() for future in futures]

        assert results == ["value"] * 4
        assert len(calls) == 1
        assert cache._locks == {}

    def test_persists_across_instances(self, tmp_path):
        """Entries survive reopening the database file."""
        db = tmp_path / "results.db"
        CacheStore(db).get_or_compute("ns", "key", "e", lambda: [1, 2, 3])

        reopened = CacheStore(db)
        assert reopened.get_or_compute("ns", "key", "e", lambda: pytest.fail("recomputed")) == [
            1,
            2,
            3,
        ]


class TestCacheMaintenance:
    """Statistics and clearing."""

    def test_stats_by_namespace(self, cache):
        """get_cache_stats counts entries per namespace."""
        cache.set("worker", 1, None, "a")
        cache.set("worker", 2, None, "b")
        cache.set("difference", 1, None, 0.5)

        stats = cache.get_cache_stats()
        assert stats["total_entries"] == 3
        assert stats["entries_by_namespace"] == {"difference": 1, "worker": 2}
        assert stats["database_path"] == str(cache.cache_db_path)

    def test_clear_cache_returns_count(self, cache):
        """clear_cache removes every entry."""
        cache.set("ns", 1, None, "a")
        cache.set("ns", 2, None, "b")
        assert cache.clear_cache() == 2
        assert cache.get_cache_stats()["total_entries"] == 0

    def test_deleted_database_is_recreated(self, tmp_path):
        """Removing the database file is a full flush, not a corruption."""
        db = tmp_path / "results.db"
        CacheStore(db).set("ns", "key", None, "value")
        for path in tmp_path.glob("results.db*"):
            path.unlink()

        fresh = CacheStore(db)
        assert fresh.get("ns", "key") is None

    def test_generate_cache_key_is_stable(self):
        """Equal keys map to equal digests; different keys do not."""
        assert CacheStore.generate_cache_key(("a", 1)) == CacheStore.generate_cache_key(("a", 1))
        assert CacheStore.generate_cache_key(("a", 1)) != CacheStore.generate_cache_key(("a", 2))

    def test_hit_rate(self):
        assert CacheStats().hit_rate == 0.0
        assert CacheStats(hits=3, misses=1).hit_rate == 0.75
