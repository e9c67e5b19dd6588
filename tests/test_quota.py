"""Google API quota monitor and the /api/monitor endpoints."""
import logging
from datetime import date, datetime, timezone

from reviewdesk.pipeline import quota
from reviewdesk.pipeline.quota import QuotaMonitor, next_midnight_utc

from conftest import auth_headers

# 2024-05-01T12:00:00Z
NOON = datetime(2024, 5, 1, 12, tzinfo=timezone.utc).timestamp()


class FakeClock:
    def __init__(self, now=NOON):
        self.now = now

    def __call__(self):
        return self.now


def test_next_midnight():
    assert next_midnight_utc(NOON) == datetime(2024, 5, 2, tzinfo=timezone.utc).timestamp()


def test_track_and_daily_limit():
    monitor = QuotaMonitor(daily_limit=3, per_100s_limit=100, clock=FakeClock())
    assert monitor.should_allow()["allowed"]
    assert monitor.track("reviews.list") == {"daily_remaining": 2, "per_100s_remaining": 99}
    monitor.track()
    monitor.track()
    check = monitor.should_allow()
    assert check["allowed"] is False
    assert check["reason"] == "Daily quota exceeded"
    assert check["daily_remaining"] == 0


def test_short_window_resets_after_100_seconds():
    clock = FakeClock()
    monitor = QuotaMonitor(daily_limit=1000, per_100s_limit=2, clock=clock)
    monitor.track()
    monitor.track()
    assert monitor.should_allow()["reason"] == "Rate limit exceeded (2/100s)"
    clock.now += 100
    assert monitor.should_allow()["allowed"] is True
    assert monitor.stats()["daily"]["used"] == 2


def test_daily_counter_resets_at_midnight():
    clock = FakeClock()
    monitor = QuotaMonitor(daily_limit=2, per_100s_limit=100, clock=clock)
    monitor.track()
    monitor.track()
    assert not monitor.should_allow()["allowed"]
    clock.now += 12 * 3600
    assert monitor.should_allow()["allowed"]
    assert monitor.stats()["daily"]["used"] == 0


def test_status_thresholds_and_alerts(caplog):
    monitor = QuotaMonitor(daily_limit=10, per_100s_limit=100, clock=FakeClock())
    with caplog.at_level(logging.WARNING, logger="reviewdesk.pipeline.quota"):
        for _ in range(6):
            monitor.track()
        assert monitor.status() == "OK"
        monitor.track()
        assert monitor.status() == "WARNING"
        monitor.track()
        monitor.track()
        assert monitor.status() == "CRITICAL"
        monitor.track()
    alerts = [r.levelname for r in caplog.records if "QUOTA ALERT" in r.getMessage()]
    assert alerts == ["WARNING", "ERROR"]


def test_usage_report_by_day_and_endpoint():
    clock = FakeClock()
    monitor = QuotaMonitor(daily_limit=100, per_100s_limit=100, clock=clock)
    monitor.track("reviews.list")
    monitor.track("reviews.list")
    clock.now += 86400
    monitor.track("accounts.list")

    report = monitor.usage_report(date(2024, 5, 1), date(2024, 5, 3))
    assert report["total_calls"] == 3
    assert report["by_endpoint"] == {"reviews.list": 2, "accounts.list": 1}
    assert report["by_date"] == {"2024-05-01": 2, "2024-05-02": 1, "2024-05-03": 0}


def test_quota_stats_endpoint_is_admin_only(client, admin, owner):
    resp = client.get("/api/monitor/quota", headers=auth_headers(admin))
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "OK"
    assert data["daily"]["limit"] == 10000
    assert client.get("/api/monitor/quota", headers=auth_headers(owner)).status_code == 403


def test_quota_check_for_any_user(client, staff):
    data = client.get("/api/monitor/quota/check", headers=auth_headers(staff)).json()
    assert data["allowed"] is True
    assert data["daily_remaining"] == 10000


def test_quota_report_endpoint(client, admin):
    quota.get_monitor().track("reviews.list")
    today = datetime.now(timezone.utc).date().isoformat()
    resp = client.get(
        f"/api/monitor/quota/report?start_date={today}&end_date={today}", headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["total_calls"] == 1

    resp = client.get(
        "/api/monitor/quota/report?start_date=2024-05-02&end_date=2024-05-01", headers=auth_headers(admin),
    )
    assert resp.status_code == 400
    assert client.get("/api/monitor/quota/report", headers=auth_headers(admin)).status_code == 422


def test_health_is_503_when_critical(client, monkeypatch):
    assert client.get("/api/monitor/health").status_code == 200
    monkeypatch.setattr(quota, "_monitor", QuotaMonitor(daily_limit=10, per_100s_limit=100))
    for _ in range(9):
        quota.get_monitor().track()
    resp = client.get("/api/monitor/health")
    assert resp.status_code == 503
    assert resp.json()["quota"]["status"] == "CRITICAL"


def test_usage_report_at_end_of_calendar():
    report = QuotaMonitor().usage_report(date.max, date.max)
    assert report["by_date"] == {date.max.isoformat(): 0}


def test_quota_report_range_limits(client, admin):
    headers = auth_headers(admin)
    resp = client.get("/api/monitor/quota/report?start_date=9999-12-31&end_date=9999-12-31", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["total_calls"] == 0

    resp = client.get("/api/monitor/quota/report?start_date=2024-01-01&end_date=2024-12-31", headers=headers)
    assert resp.status_code == 200
    assert len(resp.json()["by_date"]) == 366

    resp = client.get("/api/monitor/quota/report?start_date=2024-01-01&end_date=2025-01-01", headers=headers)
    assert resp.status_code == 400
