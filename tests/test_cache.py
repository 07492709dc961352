"""Tests for the suggestion cache."""

import pytest

from codecompleter.cache import SuggestionCache, fingerprint


@pytest.fixture
def cache():
    return SuggestionCache(ttl_seconds=300.0, max_entries=3)


class TestSuggestionCache:
    def test_put_and_get(self, cache):
        cache.put("k", "return x;", now=1000.0)
        assert cache.get("k", now=1001.0) == "return x;"

    def test_missing_key(self, cache):
        assert cache.get("nope") is None

    def test_entry_expires_after_ttl(self, cache):
        cache.put("k", "x = 1", now=1000.0)
        assert cache.get("k", now=1299.0) == "x = 1"
        assert cache.get("k", now=1300.0) is None
        assert len(cache) == 0

    def test_prune(self, cache):
        cache.put("old", "a", now=0.0)
        cache.put("new", "b", now=1000.0)
        removed = cache.prune(now=1100.0)
        assert removed == 1
        assert cache.get("new", now=1100.0) == "b"

    def test_evicts_oldest_past_max_entries(self, cache):
        for i in range(4):
            cache.put(f"k{i}", str(i), now=1000.0 + i)
        assert len(cache) == 3
        assert cache.get("k0", now=1005.0) is None
        assert cache.get("k3", now=1005.0) == "3"

    def test_put_refreshes_entry(self, cache):
        cache.put("k", "a", now=0.0)
        cache.put("k", "b", now=290.0)
        assert cache.get("k", now=400.0) == "b"

    def test_clear(self, cache):
        cache.put("k", "a")
        cache.clear()
        assert len(cache) == 0


class TestFingerprint:
    def test_stable(self):
        assert fingerprint("inline", "js", "x") == fingerprint("inline", "js", "x")

    def test_parts_are_separated(self):
        assert fingerprint("ab", "c") != fingerprint("a", "bc")

    def test_differs_by_content(self):
        assert fingerprint("a") != fingerprint("b")
