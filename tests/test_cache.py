from __future__ import annotations

import pytest

from switchyard.cache import ResultCache, make_cache_key


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_cache_key_ignores_parameter_order() -> None:
    first = make_cache_key("github", "search-code", {"q": "hello", "page": 1})
    second = make_cache_key("github", "search-code", {"page": 1, "q": "hello"})

    assert first == second


def test_cache_key_components_do_not_bleed() -> None:
    # a naive "a:b:{...}" concatenation would make these collide
    left = make_cache_key("a:b", "c", {})
    right = make_cache_key("a", "b:c", {})

    assert left != right
    assert make_cache_key("github", "search-code", {"q": "x"}) != make_cache_key(
        "github", "search-code", {"q": "y"}
    )


def test_entry_visible_until_ttl_elapses() -> None:
    clock = FakeClock()
    cache = ResultCache(clock=clock)
    cache.set("k", {"success": True}, 10, backend_id="context7", operation_type="get-library-docs")

    clock.advance(10)
    entry = cache.get("k")
    assert entry is not None
    assert entry.value == {"success": True}
    assert entry.hit_count == 1
    assert entry.last_accessed == clock.now

    clock.advance(0.001)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_zero_ttl_expires_immediately_after_write() -> None:
    clock = FakeClock()
    cache = ResultCache(clock=clock)
    cache.set("k", 1, 0)

    clock.advance(0.5)

    assert "k" not in cache
    assert cache.get("k") is None


def test_set_overwrites_and_resets_lifetime() -> None:
    clock = FakeClock()
    cache = ResultCache(clock=clock)
    cache.set("k", "old", 5)
    clock.advance(4)
    cache.set("k", "new", 5)
    clock.advance(4)

    entry = cache.get("k")
    assert entry is not None and entry.value == "new"


def test_clear_by_backend_and_prune() -> None:
    clock = FakeClock()
    cache = ResultCache(clock=clock)
    cache.set("a", 1, 100, backend_id="github")
    cache.set("b", 2, 1, backend_id="context7")
    cache.set("c", 3, 100, backend_id="context7")

    cache.clear("github")
    assert "a" not in cache
    assert len(cache) == 2

    clock.advance(2)
    assert cache.prune() == 1
    assert len(cache) == 1

    assert cache.invalidate("c") is True
    assert cache.invalidate("c") is False


def test_negative_ttl_rejected() -> None:
    with pytest.raises(ValueError):
        ResultCache().set("k", 1, -1)
