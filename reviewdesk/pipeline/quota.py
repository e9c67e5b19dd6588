"""Google API quota monitor: count calls against daily and 100-second budgets."""
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from reviewdesk.config import settings

logger = logging.getLogger(__name__)

WINDOW_100S = 100
WARNING_THRESHOLD = 0.7
CRITICAL_THRESHOLD = 0.9


def next_midnight_utc(now: float) -> float:
    current = datetime.fromtimestamp(now, tz=timezone.utc)
    tomorrow = (current + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return tomorrow.timestamp()


class QuotaMonitor:
    """
    Tracks Google API usage for the whole process.

    The daily counter resets at UTC midnight; the short window resets every
    100 seconds. Per-day/per-endpoint counts are kept for usage reports.
    Alerts are logged once per threshold per day.
    """

    def __init__(
        self,
        daily_limit: Optional[int] = None,
        per_100s_limit: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.daily_limit = daily_limit or settings.google_api_daily_quota
        self.per_100s_limit = per_100s_limit or settings.google_api_per_100s_quota
        self._clock = clock
        self._lock = threading.Lock()
        now = clock()
        self.daily_used = 0
        self.daily_reset_at = next_midnight_utc(now)
        self.window_used = 0
        self.window_reset_at = now + WINDOW_100S
        self._warning_sent = False
        self._critical_sent = False
        self._by_date: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    def _roll(self, now: float) -> None:
        if now >= self.daily_reset_at:
            logger.info("Daily quota reset. Previous usage: %d/%d", self.daily_used, self.daily_limit)
            self.daily_used = 0
            self.daily_reset_at = next_midnight_utc(now)
            self._warning_sent = False
            self._critical_sent = False
        if now >= self.window_reset_at:
            self.window_used = 0
            self.window_reset_at = now + WINDOW_100S

    def track(self, endpoint: str = "unknown") -> dict[str, int]:
        """Record one API call and return the remaining budgets."""
        with self._lock:
            now = self._clock()
            self._roll(now)
            self.daily_used += 1
            self.window_used += 1
            day = datetime.fromtimestamp(now, tz=timezone.utc).date().isoformat()
            self._by_date[day][endpoint] += 1
            self._check_alerts()
            return {
                "daily_remaining": self.daily_limit - self.daily_used,
                "per_100s_remaining": self.per_100s_limit - self.window_used,
            }

    def should_allow(self) -> dict[str, Any]:
        with self._lock:
            self._roll(self._clock())
            reason = None
            if self.daily_used >= self.daily_limit:
                reason = "Daily quota exceeded"
            elif self.window_used >= self.per_100s_limit:
                reason = f"Rate limit exceeded ({self.per_100s_limit}/100s)"
            return {
                "allowed": reason is None,
                "reason": reason,
                "daily_remaining": self.daily_limit - self.daily_used,
                "per_100s_remaining": self.per_100s_limit - self.window_used,
                "reset_time": datetime.fromtimestamp(self.daily_reset_at, tz=timezone.utc),
            }

    def status(self) -> str:
        ratio = self.daily_used / self.daily_limit
        if ratio >= CRITICAL_THRESHOLD:
            return "CRITICAL"
        if ratio >= WARNING_THRESHOLD:
            return "WARNING"
        return "OK"

    def stats(self) -> dict[str, Any]:
        with self._lock:
            self._roll(self._clock())
            return {
                "daily": {
                    "limit": self.daily_limit,
                    "used": self.daily_used,
                    "remaining": self.daily_limit - self.daily_used,
                    "usage_percent": round(self.daily_used / self.daily_limit * 100, 2),
                    "reset_time": datetime.fromtimestamp(self.daily_reset_at, tz=timezone.utc),
                },
                "per_100_seconds": {
                    "limit": self.per_100s_limit,
                    "used": self.window_used,
                    "remaining": self.per_100s_limit - self.window_used,
                    "usage_percent": round(self.window_used / self.per_100s_limit * 100, 2),
                    "reset_time": datetime.fromtimestamp(self.window_reset_at, tz=timezone.utc),
                },
                "status": self.status(),
            }

    def usage_report(self, start: date, end: date) -> dict[str, Any]:
        """Calls per day and per endpoint for an inclusive date range."""
        report: dict[str, Any] = {
            "start": start,
            "end": end,
            "total_calls": 0,
            "by_endpoint": defaultdict(int),
            "by_date": {},
        }
        with self._lock:
            for offset in range((end - start).days + 1):
                day = start + timedelta(days=offset)
                counts = self._by_date.get(day.isoformat(), {})
                report["by_date"][day.isoformat()] = sum(counts.values())
                report["total_calls"] += sum(counts.values())
                for endpoint, n in counts.items():
                    report["by_endpoint"][endpoint] += n
        report["by_endpoint"] = dict(report["by_endpoint"])
        return report

    def _check_alerts(self) -> None:
        ratio = self.daily_used / self.daily_limit
        if ratio >= CRITICAL_THRESHOLD and not self._critical_sent:
            self._critical_sent = True
            logger.error(
                "QUOTA ALERT [CRITICAL]: Google API daily usage %d/%d (%.1f%%)",
                self.daily_used, self.daily_limit, ratio * 100,
            )
        elif ratio >= WARNING_THRESHOLD and not self._warning_sent:
            self._warning_sent = True
            logger.warning(
                "QUOTA ALERT [WARNING]: Google API daily usage %d/%d (%.1f%%)",
                self.daily_used, self.daily_limit, ratio * 100,
            )


_monitor: Optional[QuotaMonitor] = None


def get_monitor() -> QuotaMonitor:
    global _monitor
    if _monitor is None:
        _monitor = QuotaMonitor()
    return _monitor


def reset_monitor() -> None:
    global _monitor
    _monitor = None
