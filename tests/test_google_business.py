"""Google Business Profile client: parsing, retries, quota handling, pagination."""
from datetime import datetime

import pytest
import requests

from reviewdesk.connectors import google_business
from reviewdesk.connectors.google_business import GoogleAPIError, NoBusinessAccountError, QuotaExceededError
from reviewdesk.pipeline.quota import get_monitor


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None, headers=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else ("" if json_data is None else str(json_data))
        self.content = b"x" if json_data is not None else b""
        self.headers = headers or {}

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


@pytest.fixture
def responses(monkeypatch):
    """Queue of responses (or exceptions) returned by requests.request, plus the calls made."""
    queue = []
    calls = []

    def fake_request(method, url, headers=None, timeout=None, **kwargs):
        calls.append({"method": method, "url": url, "headers": headers, **kwargs})
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(google_business.requests, "request", fake_request)
    return queue, calls


def test_parse_review_maps_fields():
    parsed = google_business.parse_review({
        "name": "accounts/1/locations/2/reviews/abc",
        "reviewer": {"displayName": "Dana"},
        "starRating": "FOUR",
        "comment": "  Lovely  ",
        "createTime": "2024-05-01T10:00:00.123456789Z",
        "reviewReply": {"comment": "Thank you!"},
    })
    assert parsed["google_review_id"] == "abc"
    assert parsed["reviewer_name"] == "Dana"
    assert parsed["rating"] == 4
    assert parsed["review_text"] == "Lovely"
    assert parsed["review_created_at"] == datetime(2024, 5, 1, 10, 0, 0, 123456)
    assert parsed["has_reply"] is True
    assert parsed["existing_reply_text"] == "Thank you!"


def test_parse_review_defaults_and_clamps():
    parsed = google_business.parse_review({"reviewId": "x", "starRating": "STAR_RATING_UNSPECIFIED"})
    assert parsed["reviewer_name"] == "Anonymous"
    assert parsed["rating"] == 1
    assert parsed["review_text"] == ""
    assert parsed["has_reply"] is False
    assert google_business.parse_review({"reviewId": "y", "starRating": 9})["rating"] == 5


def test_format_address():
    assert google_business.format_address({}) is None
    assert google_business.format_address(
        {"storefrontAddress": {"addressLines": ["5 High St", "Unit 2"], "locality": "Leeds"}}
    ) == "5 High St, Leeds"


def test_server_errors_are_retried(responses):
    queue, calls = responses
    queue.extend([
        FakeResponse(503, text="unavailable"),
        requests.ConnectionError("reset"),
        FakeResponse(200, {"accounts": [{"name": "accounts/9"}]}),
    ])
    assert google_business.get_primary_account_id("tok") == "accounts/9"
    assert len(calls) == 3
    assert calls[0]["headers"]["Authorization"] == "Bearer tok"
    assert get_monitor().stats()["daily"]["used"] == 3


def test_retries_are_bounded(responses):
    queue, calls = responses
    queue.extend([FakeResponse(500, text="err")] * 3)
    with pytest.raises(GoogleAPIError) as exc:
        google_business.list_accounts("tok")
    assert exc.value.status_code == 500
    assert len(calls) == 3


@pytest.mark.parametrize("resp", [
    FakeResponse(429, {"error": {"message": "Too Many Requests"}}, headers={"Retry-After": "120"}),
    FakeResponse(403, text='{"error": {"status": "RESOURCE_EXHAUSTED"}}'),
])
def test_quota_errors_are_not_retried(responses, resp):
    queue, calls = responses
    queue.append(resp)
    with pytest.raises(QuotaExceededError) as exc:
        google_business.list_accounts("tok")
    assert len(calls) == 1
    assert exc.value.status_code == 429
    if resp.status_code == 429:
        assert exc.value.retry_after == 120


def test_client_errors_raise_immediately(responses):
    queue, calls = responses
    queue.append(FakeResponse(404, {"error": {"message": "Location not found"}}))
    with pytest.raises(GoogleAPIError) as exc:
        google_business.list_accounts("tok")
    assert exc.value.status_code == 404
    assert "Location not found" in str(exc.value)
    assert len(calls) == 1


def test_no_accounts(responses):
    queue, _ = responses
    queue.append(FakeResponse(200, {}))
    with pytest.raises(NoBusinessAccountError):
        google_business.get_primary_account_id("tok")


def test_local_quota_exhaustion_blocks_calls(responses, monkeypatch):
    from reviewdesk.pipeline import quota

    monkeypatch.setattr(quota, "_monitor", quota.QuotaMonitor(daily_limit=1, per_100s_limit=10))
    queue, calls = responses
    queue.append(FakeResponse(200, {"accounts": []}))
    google_business.list_accounts("tok")
    with pytest.raises(QuotaExceededError):
        google_business.list_accounts("tok")
    assert len(calls) == 1


def test_fetch_reviews_follows_pages_up_to_cap(responses):
    queue, calls = responses
    review = {"reviewId": "r", "starRating": "FIVE", "createTime": "2024-01-01T00:00:00Z"}
    queue.extend([
        FakeResponse(200, {"reviews": [dict(review, reviewId="r1")], "nextPageToken": "p2"}),
        FakeResponse(200, {"reviews": [dict(review, reviewId="r2")], "nextPageToken": "p3",
                           "averageRating": 4.5, "totalReviewCount": 3}),
    ])
    result = google_business.fetch_reviews("tok", "accounts/1", "locations/2", max_pages=2)
    assert [r["google_review_id"] for r in result["reviews"]] == ["r1", "r2"]
    assert result["next_page_token"] == "p3"
    assert result["average_rating"] == 4.5
    assert calls[0]["url"] == f"{google_business.MY_BUSINESS_BASE}/accounts/1/locations/2/reviews"
    assert calls[0]["params"] == {"pageSize": 50}
    assert calls[1]["params"] == {"pageSize": 50, "pageToken": "p2"}


def test_fetch_locations_paginates(responses):
    queue, calls = responses
    queue.extend([
        FakeResponse(200, {"locations": [{"name": "locations/1"}], "nextPageToken": "n"}),
        FakeResponse(200, {"locations": [{"name": "locations/2"}]}),
    ])
    locs = google_business.fetch_locations("tok", "accounts/1")
    assert [loc["name"] for loc in locs] == ["locations/1", "locations/2"]
    assert calls[0]["params"]["readMask"] == "name,title,storefrontAddress"


def test_post_reply_truncates_to_byte_limit(responses):
    queue, calls = responses
    queue.append(FakeResponse(200, {"name": "reply-1", "updateTime": "2024-05-01T10:00:00Z"}))
    result = google_business.post_reply("tok", "accounts/1", "locations/2", "r1", "é" * 3000)
    body = calls[0]["json"]["comment"]
    assert len(body.encode("utf-8")) <= google_business.MAX_REPLY_BYTES
    assert calls[0]["method"] == "PUT"
    assert calls[0]["url"].endswith("/accounts/1/locations/2/reviews/r1/reply")
    assert result["reply_id"] == "reply-1"
    assert result["posted_at"] == datetime(2024, 5, 1, 10, 0)
    assert result["comment"] == body
    assert len(body) == google_business.MAX_REPLY_BYTES // 2
