from app.core.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("k", 1)

    clock.now = 9.9
    assert cache.get("k") == 1
    clock.now = 10
    assert cache.get("k") is None
    assert len(cache) == 0


def test_per_entry_ttl_override():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("short", 1, ttl_seconds=1)

    clock.now = 2
    assert cache.get("short") is None


def test_oldest_entries_are_evicted():
    cache = TTLCache(10, max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 3)
    cache.set("c", 4)

    assert cache.get("b") is None
    assert (cache.get("a"), cache.get("c")) == (3, 4)


def test_zero_size_cache_stores_nothing():
    cache = TTLCache(10, max_entries=0)
    cache.set("a", 1)
    assert cache.get("a") is None


def test_invalidate_and_clear():
    cache = TTLCache(10)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    cache.invalidate("missing")
    assert cache.get("a") is None

    cache.clear()
    assert len(cache) == 0
