"""Tests for the search response cache."""
from __future__ import annotations

import pytest

from app.services.search_cache import DEFAULT_TTL_SECONDS, TTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_default_ttl_is_fifteen_minutes() -> None:
    assert DEFAULT_TTL_SECONDS == 900


def test_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache: TTLCache[dict] = TTLCache(60, clock=clock)
    key = TTLCache.make_key("web", "python")
    cache.set(key, {"web": {}})

    clock.now = 59.0
    assert cache.get(key) == {"web": {}}
    clock.now = 60.0
    assert cache.get(key) is None
    assert len(cache) == 0


def test_keys_are_scoped_by_type_and_query() -> None:
    cache: TTLCache[str] = TTLCache(60)
    cache.set(TTLCache.make_key("web", "rust"), "web-rust")
    cache.set(TTLCache.make_key("news", "rust"), "news-rust")

    assert cache.get("web:rust") == "web-rust"
    assert cache.get("news:rust") == "news-rust"
    assert cache.get("images:rust") is None


def test_full_cache_evicts_entry_closest_to_expiry() -> None:
    clock = _Clock()
    cache: TTLCache[int] = TTLCache(60, max_entries=2, clock=clock)
    cache.set("a", 1)
    clock.now = 1.0
    cache.set("b", 2)
    clock.now = 2.0
    cache.set("c", 3)

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        TTLCache(0)
