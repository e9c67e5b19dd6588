"""Sync Google Business Profile locations and reviews into the local DB."""
import logging
import time
from typing import Any, Optional

from sqlalchemy.orm import Session

from reviewdesk.clock import utcnow
from reviewdesk.config import settings
from reviewdesk.connectors import google_business
from reviewdesk.connectors.google_business import GoogleAPIError, QuotaExceededError
from reviewdesk.connectors.openai_replies import ReplyGenerationError
from reviewdesk.models import Location, Review, Tenant, User
from reviewdesk.models.review import REPLY_POSTED, sentiment_for_rating
from reviewdesk.pipeline.credentials import (
    GoogleConnectionError,
    QuotaCooldownError,
    check_cooldown,
    ensure_valid_token,
    resolve_account_id,
    start_cooldown,
)
from reviewdesk.pipeline.throttle import get_location_cache, get_sync_locks
from reviewdesk.replies import workflow
from reviewdesk.text import unique_slug

logger = logging.getLogger(__name__)


class SyncAbortedError(QuotaCooldownError):
    """Quota error mid-sync; carries what was synced before the stop."""

    def __init__(self, retry_after: int, partial: dict[str, Any]):
        super().__init__(retry_after, "Google API rate limit reached. Sync stopped. Please try again later.")
        self.partial = partial


class AccountNotVerifiedError(Exception):
    """Review sync needs the tenant's GBP account id, which is resolved by verify/sync-locations."""


def _pause() -> None:
    if settings.google_call_delay_seconds > 0:
        time.sleep(settings.google_call_delay_seconds)


def sync_locations(tenant: Tenant, db: Session) -> dict[str, Any]:
    """Fetch the tenant's GBP locations and insert unseen ones. Returns total/saved/skipped."""
    access_token = ensure_valid_token(tenant, db)
    account_id = resolve_account_id(tenant, db, access_token)

    cache = get_location_cache()
    cache_key = ("locations", tenant.id)
    locations = cache.get(cache_key)
    if locations is None:
        logger.info("Fetching locations from Google for tenant %s", tenant.slug)
        try:
            locations = google_business.fetch_locations(access_token, account_id)
        except QuotaExceededError as exc:
            raise start_cooldown(tenant.id) from exc
        cache.set(cache_key, locations)
    else:
        logger.info("Using cached location data for tenant %s", tenant.slug)

    existing_ids = {
        row[0] for row in db.query(Location.google_location_id).filter(Location.tenant_id == tenant.id).all()
    }
    saved = skipped = 0
    for loc in locations:
        google_location_id = loc.get("name")
        if not google_location_id or google_location_id in existing_ids:
            skipped += 1
            continue
        title = loc.get("title") or "Unnamed Location"
        slug = unique_slug(
            title,
            lambda s: db.query(Location).filter(Location.tenant_id == tenant.id, Location.slug == s).first()
            is not None,
            fallback="location",
        )
        db.add(Location(
            tenant_id=tenant.id,
            google_location_id=google_location_id,
            google_account_id=account_id,
            name=title,
            slug=slug,
            address=google_business.format_address(loc),
            is_active=True,
        ))
        db.flush()
        existing_ids.add(google_location_id)
        saved += 1
    db.commit()

    logger.info("Location sync complete for tenant %s: %d new, %d existing", tenant.slug, saved, skipped)
    return {"account_id": account_id, "total": len(locations), "saved": saved, "skipped": skipped}


def upsert_reviews(
    tenant: Tenant,
    location: Location,
    google_reviews: list[dict[str, Any]],
    db: Session,
    auto_reply: bool = False,
    account_id: Optional[str] = None,
    access_token: Optional[str] = None,
    actor: Optional[User] = None,
) -> dict[str, int]:
    """
    Insert new reviews, refresh existing ones (keyed by google_review_id).

    With auto_reply, each new review without a platform reply gets an AI draft
    and is posted when the tenant's auto-approval rules match. AI or posting
    failures for one review are logged and the review is still saved.
    """
    counts = {"new": 0, "updated": 0, "auto_posted": 0}
    for g in google_reviews:
        existing = db.query(Review).filter(Review.google_review_id == g["google_review_id"]).first()
        if existing:
            existing.has_reply = g["has_reply"] or existing.posted_to_google
            existing.rating = g["rating"]
            existing.review_text = g["review_text"]
            existing.sentiment = sentiment_for_rating(g["rating"])
            if g["has_reply"] and existing.reply_status != REPLY_POSTED:
                _adopt_platform_reply(existing, g.get("existing_reply_text"))
            counts["updated"] += 1
            continue

        review = Review(
            tenant_id=tenant.id,
            location_id=location.id,
            google_review_id=g["google_review_id"],
            reviewer_name=g["reviewer_name"],
            rating=g["rating"],
            review_text=g["review_text"],
            sentiment=sentiment_for_rating(g["rating"]),
            review_created_at=g["review_created_at"],
            has_reply=g["has_reply"],
        )
        if g["has_reply"]:
            _adopt_platform_reply(review, g.get("existing_reply_text"))
        db.add(review)
        db.flush()
        counts["new"] += 1

        if auto_reply and not g["has_reply"]:
            try:
                if workflow.auto_reply(review, tenant, account_id, access_token, approver=actor):
                    counts["auto_posted"] += 1
            except QuotaCooldownError:
                # Stop posting for this batch; the draft (if any) is kept
                auto_reply = False
                logger.error("Auto-reply stopped for tenant %s: Google quota exceeded", tenant.id)
            except (ReplyGenerationError, GoogleAPIError) as e:
                logger.error("Auto-reply failed for review %s: %s", review.google_review_id, e)
    db.commit()
    return counts


def _adopt_platform_reply(review: Review, reply_text: Optional[str]) -> None:
    """A reply already exists on Google: treat it as the review's posted reply."""
    review.has_reply = True
    review.reply_status = REPLY_POSTED
    review.approval_status = "posted"
    if reply_text:
        review.final_reply = reply_text


def fetch_location_reviews(
    tenant: Tenant,
    location: Location,
    db: Session,
    actor: Optional[User] = None,
    max_pages: Optional[int] = 1,
    auto_reply: bool = True,
) -> dict[str, int]:
    """On-demand fetch for one location (first page by default), with AI auto-reply."""
    access_token = ensure_valid_token(tenant, db)
    account_id = location.google_account_id or resolve_account_id(tenant, db, access_token)
    logger.info("Google API call: reviews.list for tenant %s location %s", tenant.slug, location.id)
    try:
        result = google_business.fetch_reviews(
            access_token, account_id, location.google_location_id, max_pages=max_pages,
        )
    except QuotaExceededError as exc:
        raise start_cooldown(tenant.id) from exc
    counts = upsert_reviews(
        tenant, location, result["reviews"], db,
        auto_reply=auto_reply, account_id=account_id, access_token=access_token, actor=actor,
    )
    logger.info(
        "Fetched reviews for tenant %s: %d new, %d updated", tenant.slug, counts["new"], counts["updated"],
    )
    return {"total_fetched": len(result["reviews"]), **counts}


def sync_tenant_reviews(tenant: Tenant, db: Session, max_pages: Optional[int] = 1) -> dict[str, Any]:
    """
    Sync reviews for every active location of a tenant, one location at a time.

    A failing location is reported and skipped; a quota error stops the sync,
    starts the tenant's cooldown and raises SyncAbortedError with partial results.
    Only one sync per tenant runs at a time (SyncInProgressError otherwise).
    """
    with get_sync_locks().hold(tenant.id):
        check_cooldown(tenant.id)
        if not tenant.is_connected:
            raise GoogleConnectionError("Google Business Profile not connected.")
        if not tenant.gbp_account_id:
            raise AccountNotVerifiedError(
                "Account not verified yet. Please verify your Google Business account first."
            )
        access_token = ensure_valid_token(tenant, db)
        locations = (
            db.query(Location)
            .filter(Location.tenant_id == tenant.id, Location.is_active == True)  # noqa: E712
            .order_by(Location.id)
            .all()
        )

        totals = {"total_new_reviews": 0, "total_updated_reviews": 0}
        results = []
        for location in locations:
            _pause()
            account_id = tenant.gbp_account_id or location.google_account_id
            try:
                fetched = google_business.fetch_reviews(
                    access_token, account_id, location.google_location_id, max_pages=max_pages,
                )
                counts = upsert_reviews(tenant, location, fetched["reviews"], db)
            except QuotaExceededError as exc:
                retry_after = start_cooldown(tenant.id).retry_after
                raise SyncAbortedError(retry_after, {
                    **totals,
                    "locations_processed": len(results),
                    "location_results": results,
                }) from exc
            except GoogleAPIError as e:
                logger.error("Error syncing reviews for location %s: %s", location.name, e)
                results.append({
                    "location_id": location.id,
                    "location_name": location.name,
                    "status": "failed",
                    "error": str(e),
                })
                continue
            totals["total_new_reviews"] += counts["new"]
            totals["total_updated_reviews"] += counts["updated"]
            results.append({
                "location_id": location.id,
                "location_name": location.name,
                "status": "success",
                "new": counts["new"],
                "updated": counts["updated"],
            })

        tenant.gbp_last_sync_at = utcnow()
        db.commit()
        logger.info(
            "Review sync complete for tenant %s: %d new, %d updated across %d locations",
            tenant.slug, totals["total_new_reviews"], totals["total_updated_reviews"], len(locations),
        )
        return {**totals, "locations_processed": len(locations), "location_results": results}


def initial_sync(tenant: Tenant, db: Session) -> dict[str, Any]:
    """One-time account -> locations -> reviews sync after connecting. No-op when already done."""
    if tenant.gbp_initial_sync_done:
        return {"already_synced": True}
    location_result = sync_locations(tenant, db)
    review_result = sync_tenant_reviews(tenant, db, max_pages=None)
    tenant.gbp_initial_sync_done = True
    tenant.gbp_last_sync_at = utcnow()
    db.commit()
    logger.info("Initial sync completed for tenant %s", tenant.slug)
    return {
        "already_synced": False,
        "account_id": location_result["account_id"],
        "locations_found": location_result["total"],
        "locations_saved": location_result["saved"],
        "reviews_new": review_result["total_new_reviews"],
        "reviews_updated": review_result["total_updated_reviews"],
    }
