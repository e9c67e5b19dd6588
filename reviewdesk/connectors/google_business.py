"""Google Business Profile connector: OAuth 2.0 + account/location/review sync + reply posting."""
import logging
import time
from typing import Any, Optional

import requests
from authlib.integrations.requests_client import OAuth2Session

from reviewdesk.clock import parse_rfc3339, utcnow
from reviewdesk.config import settings
from reviewdesk.pipeline.quota import get_monitor

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
SCOPE = "https://www.googleapis.com/auth/business.manage"

ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
BUSINESS_INFO_BASE = "https://mybusinessbusinessinformation.googleapis.com/v1"
MY_BUSINESS_BASE = "https://mybusiness.googleapis.com/v4"

REVIEWS_PAGE_SIZE = 50  # Google's max
MAX_REPLY_BYTES = 4096
RETRIABLE_STATUS = (500, 503)

STAR_MAP = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}


class GoogleAPIError(Exception):
    """Google returned an error (or could not be reached)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(GoogleAPIError):
    """Google quota exhausted (HTTP 429 / RESOURCE_EXHAUSTED). Never retried."""

    def __init__(self, message: str = "Google API quota exceeded", retry_after: Optional[int] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class NoBusinessAccountError(GoogleAPIError):
    """The connected Google account owns no Business Profile accounts."""


def get_oauth_client(token: Optional[dict] = None) -> OAuth2Session:
    """Build OAuth2 client for Google."""
    return OAuth2Session(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        scope=SCOPE,
        token=token,
    )


def get_authorization_url(state: str) -> str:
    """Consent URL; offline access + forced consent so Google always returns a refresh token."""
    client = get_oauth_client()
    url, _ = client.create_authorization_url(
        AUTH_URL,
        state=state,
        access_type="offline",
        prompt="consent",
    )
    return url


def exchange_code_for_tokens(code: str) -> dict[str, Any]:
    """Exchange authorization code for access/refresh tokens."""
    client = get_oauth_client()
    return client.fetch_token(TOKEN_URL, code=code, grant_type="authorization_code")


def refresh_tokens(refresh_token: str) -> dict[str, Any]:
    """Refresh access token using refresh token."""
    client = get_oauth_client()
    return client.refresh_token(TOKEN_URL, refresh_token=refresh_token)


def revoke_token(token: str) -> None:
    client = get_oauth_client()
    resp = client.revoke_token(REVOKE_URL, token=token)
    if resp is not None and resp.status_code >= 400:
        raise GoogleAPIError(f"Token revoke failed: {resp.status_code}", resp.status_code)


def _headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}


def _is_quota_error(resp: requests.Response) -> bool:
    if resp.status_code == 429:
        return True
    if resp.status_code < 400:
        return False
    body = resp.text or ""
    return "RESOURCE_EXHAUSTED" in body or "Quota exceeded" in body


def _error_message(resp: requests.Response) -> str:
    try:
        return resp.json().get("error", {}).get("message") or resp.text[:300]
    except ValueError:
        return resp.text[:300]


def _call(
    method: str,
    url: str,
    access_token: str,
    endpoint: str,
    **kwargs,
) -> dict[str, Any]:
    """
    One Google API call with quota accounting.

    500/503 and connection errors are retried with exponential backoff; quota
    errors stop immediately because retrying them only burns more quota.
    """
    monitor = get_monitor()
    check = monitor.should_allow()
    if not check["allowed"]:
        raise QuotaExceededError(check["reason"])

    retries = settings.google_retry_max
    delay = settings.google_retry_initial_delay
    while True:
        monitor.track(endpoint)
        try:
            resp = requests.request(method, url, headers=_headers(access_token), timeout=30, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            if retries <= 0:
                raise GoogleAPIError(f"{endpoint} failed: {exc}") from exc
            logger.warning("%s connection error, retrying in %.1fs (%d left)", endpoint, delay, retries)
        else:
            if _is_quota_error(resp):
                logger.error("Google quota exceeded on %s; not retrying", endpoint)
                retry_after = resp.headers.get("Retry-After")
                raise QuotaExceededError(
                    _error_message(resp),
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                )
            if resp.status_code in RETRIABLE_STATUS and retries > 0:
                logger.warning(
                    "%s returned %d, retrying in %.1fs (%d left)", endpoint, resp.status_code, delay, retries,
                )
            elif resp.status_code >= 400:
                raise GoogleAPIError(f"{endpoint} failed: {_error_message(resp)}", resp.status_code)
            else:
                return resp.json() if resp.content else {}
        time.sleep(delay)
        retries -= 1
        delay = min(delay * 2, settings.google_retry_max_delay)


def list_accounts(access_token: str) -> list[dict[str, Any]]:
    data = _call("GET", ACCOUNTS_URL, access_token, "accounts.list")
    return data.get("accounts", []) or []


def get_primary_account_id(access_token: str) -> str:
    """Return the first account's resource name ("accounts/123")."""
    accounts = list_accounts(access_token)
    if not accounts:
        raise NoBusinessAccountError("No Google Business accounts found", status_code=404)
    return accounts[0]["name"]


def fetch_locations(access_token: str, account_id: str) -> list[dict[str, Any]]:
    """Fetch all locations for an account (paginated)."""
    url = f"{BUSINESS_INFO_BASE}/{account_id}/locations"
    results = []
    page_token = None
    while True:
        params = {"readMask": "name,title,storefrontAddress", "pageSize": 100}
        if page_token:
            params["pageToken"] = page_token
        data = _call("GET", url, access_token, "accounts.locations.list", params=params)
        results.extend(data.get("locations", []) or [])
        page_token = data.get("nextPageToken")
        if not page_token:
            break
    return results


def format_address(location: dict[str, Any]) -> Optional[str]:
    address = location.get("storefrontAddress")
    if not address:
        return None
    lines = address.get("addressLines") or []
    parts = [lines[0] if lines else "", address.get("locality", "")]
    return ", ".join(p for p in parts if p) or None


def _star_to_int(star_rating: Any) -> int:
    if isinstance(star_rating, int):
        return star_rating
    text = str(star_rating or "").upper().replace("STAR_RATING_", "")
    if text.isdigit():
        return int(text)
    return STAR_MAP.get(text, 0)


def parse_review(raw: dict[str, Any]) -> dict[str, Any]:
    """Normalize a v4 review resource into our column names."""
    name = raw.get("name") or ""
    review_id = raw.get("reviewId") or (name.split("/")[-1] if "/" in name else name)
    reviewer = raw.get("reviewer") or {}
    reviewer_name = reviewer.get("displayName") or "Anonymous"
    rating = _star_to_int(raw.get("starRating"))
    # Out-of-range ratings are clamped so the 1-5 invariant holds in storage
    rating = min(5, max(1, rating))
    reply = raw.get("reviewReply") or {}
    reply_text = (reply.get("comment") or "").strip() or None
    return {
        "google_review_id": review_id,
        "reviewer_name": reviewer_name[:500],
        "rating": rating,
        "review_text": (raw.get("comment") or "").strip(),
        "review_created_at": parse_rfc3339(raw.get("createTime")) or utcnow(),
        "has_reply": bool(reply),
        "existing_reply_text": reply_text,
    }


def fetch_reviews(
    access_token: str,
    account_id: str,
    location_id: str,
    max_pages: Optional[int] = None,
    page_size: int = REVIEWS_PAGE_SIZE,
) -> dict[str, Any]:
    """
    Fetch reviews for a location, following nextPageToken.

    Returns reviews (parsed), next_page_token (set when max_pages cut the
    listing short), average_rating and total_review_count as reported by Google.
    """
    url = f"{MY_BUSINESS_BASE}/{account_id}/{location_id}/reviews"
    reviews = []
    page_token = None
    pages = 0
    data: dict[str, Any] = {}
    while True:
        params = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        data = _call("GET", url, access_token, "reviews.list", params=params)
        reviews.extend(parse_review(r) for r in data.get("reviews", []) or [])
        pages += 1
        page_token = data.get("nextPageToken")
        if not page_token or (max_pages is not None and pages >= max_pages):
            break
    logger.info("Fetched %d reviews for %s", len(reviews), location_id)
    return {
        "reviews": reviews,
        "next_page_token": page_token,
        "average_rating": data.get("averageRating"),
        "total_review_count": data.get("totalReviewCount"),
    }


def post_reply(
    access_token: str,
    account_id: str,
    location_id: str,
    review_id: str,
    comment: str,
) -> dict[str, Any]:
    """
    Create or update the reply to a review.

    The comment is cut to Google's 4096-byte limit; the returned `comment` is
    the text Google actually stores.
    """
    url = f"{MY_BUSINESS_BASE}/{account_id}/{location_id}/reviews/{review_id}/reply"
    sent = comment.encode("utf-8")[:MAX_REPLY_BYTES].decode("utf-8", "ignore")
    body = {"comment": sent}
    data = _call("PUT", url, access_token, "reviews.updateReply", json=body)
    return {
        "reply_id": data.get("name") or f"{account_id}/{location_id}/reviews/{review_id}/reply",
        "posted_at": parse_rfc3339(data.get("updateTime")) or utcnow(),
        "comment": sent,
    }
