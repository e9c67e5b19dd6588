"""In-process guards: cooldowns, sync locks, TTL cache, single-flight."""
import threading
import time

import pytest

from reviewdesk.pipeline.throttle import QuotaCooldowns, SingleFlight, SyncInProgressError, SyncLocks, TTLCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_cooldown_counts_down_and_expires():
    clock = FakeClock()
    cooldowns = QuotaCooldowns(clock=clock)
    assert cooldowns.remaining(1) == 0

    assert cooldowns.start(1, seconds=30) == 30
    assert cooldowns.remaining(1) == 30
    assert not cooldowns.is_active(2)

    clock.now += 29.5
    assert cooldowns.remaining(1) == 1
    clock.now += 1
    assert cooldowns.remaining(1) == 0
    assert not cooldowns.is_active(1)


def test_cooldown_default_duration_from_settings():
    from reviewdesk.config import settings

    cooldowns = QuotaCooldowns(clock=FakeClock())
    assert cooldowns.start(1) == settings.quota_cooldown_seconds == 30


def test_sync_lock_is_exclusive_per_tenant():
    locks = SyncLocks()
    with locks.hold(1):
        assert locks.is_locked(1)
        with pytest.raises(SyncInProgressError):
            with locks.hold(1):
                pass
        with locks.hold(2):
            assert locks.is_locked(2)
    assert not locks.is_locked(1)


def test_sync_lock_released_on_error():
    locks = SyncLocks()
    with pytest.raises(RuntimeError):
        with locks.hold(1):
            raise RuntimeError("boom")
    assert not locks.is_locked(1)


def test_ttl_cache_expires():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("k", [1, 2])
    assert cache.get("k") == [1, 2]
    clock.now += 59
    assert cache.get("k") == [1, 2]
    clock.now += 1
    assert cache.get("k") is None


def test_ttl_cache_invalidate():
    cache = TTLCache(60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert cache.get("a") is None and cache.get("b") == 2
    cache.invalidate()
    assert cache.get("b") is None


def test_single_flight_shares_one_call():
    flight = SingleFlight()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def lookup():
        calls.append(1)
        started.set()
        release.wait(5)
        return "accounts/1"

    results = []
    leader = threading.Thread(target=lambda: results.append(flight.do("t1", lookup)))
    leader.start()
    started.wait(5)
    follower = threading.Thread(target=lambda: results.append(flight.do("t1", lookup)))
    follower.start()
    time.sleep(0.05)
    release.set()
    leader.join(5)
    follower.join(5)

    assert results == ["accounts/1", "accounts/1"]
    assert calls == [1]


def test_single_flight_propagates_errors_and_resets():
    flight = SingleFlight()

    def fail():
        raise ValueError("nope")

    with pytest.raises(ValueError):
        flight.do("k", fail)
    assert flight.do("k", lambda: 42) == 42
