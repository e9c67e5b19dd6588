"""
In-process guards around Google API usage.

- QuotaCooldowns: after a 429 from Google, block further calls for a tenant.
- SyncLocks: at most one review sync per tenant at a time.
- TTLCache: location listings change rarely; cache them per tenant.
- SingleFlight: concurrent account lookups for a tenant share one API call.

All state is per-process. For multi-worker deployments, replace with Redis.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Hashable, Optional

from reviewdesk.config import settings

logger = logging.getLogger(__name__)


class SyncInProgressError(Exception):
    """A sync for this tenant is already running."""


class QuotaCooldowns:
    """Per-tenant cooldown deadlines (monotonic clock)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._until: dict[int, float] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def start(self, tenant_id: int, seconds: Optional[int] = None) -> int:
        duration = seconds if seconds is not None else settings.quota_cooldown_seconds
        with self._lock:
            self._until[tenant_id] = self._clock() + duration
        logger.error("Google quota exceeded for tenant %s, cooldown set for %ss", tenant_id, duration)
        return duration

    def remaining(self, tenant_id: int) -> int:
        """Seconds left in the cooldown, 0 when none is active. Expired entries are dropped."""
        with self._lock:
            until = self._until.get(tenant_id)
            if until is None:
                return 0
            left = until - self._clock()
            if left <= 0:
                del self._until[tenant_id]
                return 0
            return max(1, int(left + 0.999))

    def is_active(self, tenant_id: int) -> bool:
        return self.remaining(tenant_id) > 0

    def clear(self, tenant_id: Optional[int] = None) -> None:
        with self._lock:
            if tenant_id is None:
                self._until.clear()
            else:
                self._until.pop(tenant_id, None)


class SyncLocks:
    """Non-blocking per-tenant lock; a second sync is rejected, not queued."""

    def __init__(self):
        self._started: dict[int, float] = {}
        self._lock = threading.Lock()

    def acquire(self, tenant_id: int) -> bool:
        with self._lock:
            if tenant_id in self._started:
                return False
            self._started[tenant_id] = time.time()
            return True

    def release(self, tenant_id: int) -> None:
        with self._lock:
            self._started.pop(tenant_id, None)

    def is_locked(self, tenant_id: int) -> bool:
        with self._lock:
            return tenant_id in self._started

    @contextmanager
    def hold(self, tenant_id: int):
        if not self.acquire(tenant_id):
            raise SyncInProgressError(f"Review sync already in progress for tenant {tenant_id}")
        try:
            yield
        finally:
            self.release(tenant_id)


class TTLCache:
    """Small dict-backed cache with a fixed time-to-live per entry."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._data: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self._ttl:
                del self._data[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = (self._clock(), value)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._data.clear()
            else:
                self._data.pop(key, None)


class _Call:
    def __init__(self):
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class SingleFlight:
    """Deduplicate concurrent calls with the same key: followers wait for the leader's result."""

    def __init__(self):
        self._calls: dict[Hashable, _Call] = {}
        self._lock = threading.Lock()

    def do(self, key: Hashable, fn: Callable[[], Any]) -> Any:
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call
        if not leader:
            logger.info("Waiting for in-flight call %s", key)
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result
        try:
            call.result = fn()
            return call.result
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()


# Module-level instances so the same state is used across requests
_cooldowns: Optional[QuotaCooldowns] = None
_sync_locks: Optional[SyncLocks] = None
_location_cache: Optional[TTLCache] = None
_account_lookups: Optional[SingleFlight] = None


def get_cooldowns() -> QuotaCooldowns:
    global _cooldowns
    if _cooldowns is None:
        _cooldowns = QuotaCooldowns()
    return _cooldowns


def get_sync_locks() -> SyncLocks:
    global _sync_locks
    if _sync_locks is None:
        _sync_locks = SyncLocks()
    return _sync_locks


def get_location_cache() -> TTLCache:
    global _location_cache
    if _location_cache is None:
        _location_cache = TTLCache(settings.location_cache_ttl_seconds)
    return _location_cache


def get_account_lookups() -> SingleFlight:
    global _account_lookups
    if _account_lookups is None:
        _account_lookups = SingleFlight()
    return _account_lookups


def reset_all() -> None:
    """Drop all in-process guard state (tests, admin tooling)."""
    global _cooldowns, _sync_locks, _location_cache, _account_lookups
    _cooldowns = None
    _sync_locks = None
    _location_cache = None
    _account_lookups = None
