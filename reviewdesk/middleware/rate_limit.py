"""
Request rate limiting per client IP and per bearer token.

The IP limit stops one address from flooding login and sync endpoints; the
token limit stops one account from exceeding its budget across many IPs.
Either limit answers 429 with Retry-After.
"""
import hashlib
import logging
import threading
import time
from collections import defaultdict
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class FixedWindowCounter:
    """Request counts per key in fixed one-minute windows. Old windows are pruned on access."""

    def __init__(self, window_seconds: int = WINDOW_SECONDS, clock: Callable[[], float] = time.time):
        self._window = window_seconds
        self._clock = clock
        self._counts: dict[tuple[str, int], int] = defaultdict(int)
        self._lock = threading.Lock()

    def _current_window(self) -> int:
        return int(self._clock() // self._window) * self._window

    def hit(self, key: str) -> int:
        """Count one request for key and return the total in this window."""
        w = self._current_window()
        with self._lock:
            for stale in [k for k in self._counts if k[1] < w]:
                del self._counts[stale]
            self._counts[(key, w)] += 1
            return self._counts[(key, w)]

    def seconds_until_reset(self) -> int:
        return max(1, int(self._current_window() + self._window - self._clock()))


_counter: Optional[FixedWindowCounter] = None


def get_counter() -> FixedWindowCounter:
    global _counter
    if _counter is None:
        _counter = FixedWindowCounter()
    return _counter


def reset_counter() -> None:
    global _counter
    _counter = None


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "0.0.0.0"


def token_key(request: Request) -> Optional[str]:
    """Digest of the bearer token; raw tokens are never kept in memory."""
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return hashlib.sha256(token.strip().encode("utf-8")).hexdigest()[:32]


def too_many_requests(retry_after: int) -> Response:
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Please try again later.", "retry_after_seconds": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        requests_per_minute_ip: int = 100,
        requests_per_minute_user: int = 100,
        exempt_paths: Optional[list[str]] = None,
    ):
        super().__init__(app)
        self.rpm_ip = requests_per_minute_ip
        self.rpm_user = requests_per_minute_user
        self.exempt = set(exempt_paths or ["/health"])

    def _is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.exempt)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._is_exempt(request.url.path):
            return await call_next(request)

        counter = get_counter()
        client_ip = get_client_ip(request)
        if counter.hit(f"ip:{client_ip}") > self.rpm_ip:
            logger.warning("Rate limit exceeded for IP %s", client_ip)
            return too_many_requests(counter.seconds_until_reset())

        key = token_key(request)
        if key and counter.hit(f"user:{key}") > self.rpm_user:
            logger.warning("Rate limit exceeded for bearer token %s...", key[:8])
            return too_many_requests(counter.seconds_until_reset())

        return await call_next(request)
