"""Tests for the TTL cache with single-flight computation."""

import threading
import time

import pytest

from reportstudio.cache import CacheManager


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheManager(default_ttl=60, sweep_interval=0.01, clock=clock)


class Counter:
    """Compute function that counts its calls."""

    def __init__(self, value="v"):
        self.calls = 0
        self.value = value

    def __call__(self):
        self.calls += 1
        return self.value


class TestGetOrSet:
    """Tests for hits, misses and TTL."""

    def test_hit_never_recomputes(self, cache):
        compute = Counter()
        assert cache.get_or_set("k", compute) == "v"
        assert cache.get_or_set("k", compute) == "v"
        assert compute.calls == 1
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.computations) == (1, 1, 1)

    def test_expiry(self, cache, clock):
        compute = Counter()
        cache.get_or_set("k", compute, ttl=10)
        clock.advance(9)
        cache.get_or_set("k", compute)
        assert compute.calls == 1
        clock.advance(1)
        cache.get_or_set("k", compute)
        assert compute.calls == 2

    def test_default_ttl(self, cache, clock):
        cache.set("k", 1)
        clock.advance(59)
        assert cache.get("k") == 1
        clock.advance(1)
        assert cache.get("k", "gone") == "gone"

    def test_failure_stores_nothing(self, cache):
        def boom():
            raise RuntimeError("source down")

        with pytest.raises(RuntimeError):
            cache.get_or_set("k", boom)
        assert not cache.contains("k")
        assert cache.stats().failures == 1
        assert cache.get_or_set("k", Counter("ok")) == "ok"

    def test_none_is_a_valid_value(self, cache):
        compute = Counter(None)
        cache.get_or_set("k", compute)
        cache.get_or_set("k", compute)
        assert compute.calls == 1


class TestSingleFlight:
    """Tests for concurrent callers of one key."""

    def test_concurrent_callers_share_one_computation(self, cache):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow():
            calls.append(1)
            started.set()
            release.wait(5)
            return "shared"

        results = []

        def caller():
            results.append(cache.get_or_set("k", slow))

        leader = threading.Thread(target=caller)
        leader.start()
        assert started.wait(5)
        followers = [threading.Thread(target=caller) for _ in range(5)]
        for t in followers:
            t.start()
        # Followers register before the computation finishes
        deadline = time.monotonic() + 5
        while cache.stats().shared_waits < 5 and time.monotonic() < deadline:
            time.sleep(0.001)
        release.set()
        for t in [leader, *followers]:
            t.join(5)

        assert len(calls) == 1
        assert results == ["shared"] * 6
        assert cache.stats().in_flight == 0

    def test_followers_receive_the_error(self, cache):
        started = threading.Event()
        release = threading.Event()

        def failing():
            started.set()
            release.wait(5)
            raise ValueError("bad payload")

        errors = []

        def caller():
            try:
                cache.get_or_set("k", failing)
            except ValueError as e:
                errors.append(str(e))

        threads = [threading.Thread(target=caller)]
        threads[0].start()
        assert started.wait(5)
        threads.append(threading.Thread(target=caller))
        threads[1].start()
        deadline = time.monotonic() + 5
        while cache.stats().shared_waits < 1 and time.monotonic() < deadline:
            time.sleep(0.001)
        release.set()
        for t in threads:
            t.join(5)

        assert errors == ["bad payload", "bad payload"]
        assert not cache.contains("k")

    def test_different_keys_compute_independently(self, cache):
        a, b = Counter("a"), Counter("b")
        assert cache.get_or_set("k1", a) == "a"
        assert cache.get_or_set("k2", b) == "b"
        assert (a.calls, b.calls) == (1, 1)

    def test_invalidation_during_compute_prevents_store(self, cache):
        def compute():
            cache.delete_pattern("fetch:t1:*")
            return "stale"

        assert cache.get_or_set("fetch:t1:ds1:abc", compute) == "stale"
        assert not cache.contains("fetch:t1:ds1:abc")


class TestRefresh:
    """Tests for refresh."""

    def test_refresh_replaces(self, cache):
        cache.set("k", "old")
        assert cache.refresh("k", Counter("new")) == "new"
        assert cache.get("k") == "new"

    def test_failed_refresh_keeps_previous_entry(self, cache):
        cache.set("k", "old")

        def boom():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            cache.refresh("k", boom)
        assert cache.get("k") == "old"


class TestInvalidation:
    """Tests for delete, delete_pattern, clear and sweeping."""

    def test_delete(self, cache):
        cache.set("k", 1)
        assert cache.delete("k")
        assert not cache.delete("k")

    def test_delete_pattern(self, cache):
        for key in [
            "fetch:t1:ds1:aaa",
            "profile:t1:ds1:bbb",
            "fetch:t1:ds10:ccc",
            "fetch:t2:ds1:ddd",
        ]:
            cache.set(key, key)
        assert cache.delete_pattern("*:t1:ds1:*") == 2
        assert cache.contains("fetch:t1:ds10:ccc")
        assert cache.contains("fetch:t2:ds1:ddd")
        assert not cache.contains("profile:t1:ds1:bbb")

    def test_pattern_is_not_a_regex(self, cache):
        cache.set("fetch:t1:a.b:x", 1)
        cache.set("fetch:t1:aXb:x", 1)
        assert cache.delete_pattern("*:a.b:*") == 1

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0

    def test_sweep_expired(self, cache, clock):
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(2)
        assert cache.sweep_expired() == 1
        assert len(cache) == 1
        assert cache.stats().expired_swept == 1

    def test_background_sweeper(self, clock):
        cache = CacheManager(default_ttl=1, sweep_interval=0.01, clock=clock)
        cache.set("k", 1)
        clock.advance(5)
        cache.start()
        try:
            assert cache.running
            deadline = time.monotonic() + 5
            while len(cache) and time.monotonic() < deadline:
                time.sleep(0.01)
            assert len(cache) == 0
        finally:
            cache.stop()
        assert not cache.running
