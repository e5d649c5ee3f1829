"""
Tests del cache efímero con TTL
"""
import re
import time

import pytest

from osce_backend.core.cache import EphemeralCache, get_cache


class Fetcher:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def test_returns_cached_value_within_ttl():
    cache = EphemeralCache(default_ttl=0.1)
    fetch = Fetcher("first", "second")

    assert cache.get("exams:all", fetch) == "first"
    assert cache.get("exams:all", fetch) == "first"
    assert fetch.calls == 1


def test_refetches_after_ttl_expires():
    cache = EphemeralCache(default_ttl=60)
    fetch = Fetcher("first", "second")

    assert cache.get("exams:all", fetch, ttl=0.1) == "first"
    time.sleep(0.15)
    assert cache.get("exams:all", fetch, ttl=0.1) == "second"
    assert fetch.calls == 2


def test_serves_stale_value_when_refresh_fails():
    cache = EphemeralCache(default_ttl=0.1)
    fetch = Fetcher("first", RuntimeError("database down"))

    assert cache.get("hospitals:all", fetch) == "first"
    time.sleep(0.15)
    assert cache.get("hospitals:all", fetch) == "first"
    assert fetch.calls == 2
    assert cache.get_stats()["fallbacks"] == 1


def test_failure_without_previous_value_propagates():
    cache = EphemeralCache()
    fetch = Fetcher(RuntimeError("database down"))

    with pytest.raises(RuntimeError):
        cache.get("groups:all", fetch)


def test_none_is_not_stored():
    cache = EphemeralCache()
    fetch = Fetcher(None, None)

    assert cache.get("missing", fetch) is None
    assert cache.get("missing", fetch) is None
    assert fetch.calls == 2
    assert cache.get_stats()["size"] == 0


def test_force_refresh_bypasses_fresh_entry():
    cache = EphemeralCache()
    fetch = Fetcher("first", "second")

    cache.get("exams:all", fetch)
    assert cache.get("exams:all", fetch, force_refresh=True) == "second"
    assert cache.get("exams:all", fetch) == "second"


def test_invalidate_and_invalidate_pattern():
    cache = EphemeralCache()
    for key in ("exams:all", "exams:upcoming", "hospitals:all"):
        cache.get(key, lambda key=key: key)

    cache.invalidate("hospitals:all")
    assert cache.get_stats()["keys"] == ["exams:all", "exams:upcoming"]

    assert cache.invalidate_pattern(r"^exams:") == 2
    assert cache.get_stats()["size"] == 0

    cache.get("groups:all", lambda: [1])
    assert cache.invalidate_pattern(re.compile("groups")) == 1


def test_clear_resets_entries_and_counters():
    cache = EphemeralCache()
    cache.get("a", lambda: 1)
    cache.get("a", lambda: 1)

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1

    cache.clear()
    stats = cache.get_stats()
    assert stats["size"] == 0
    assert stats["hits"] == 0


def test_global_cache_is_singleton():
    assert get_cache() is get_cache()
