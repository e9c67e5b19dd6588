"""
Reply lifecycle for a single review.

    none ──generate──▶ drafted ──edit──▶ edited ──approve──▶ posted
      │                   └────────────approve─────────────────▲
      └──edit (manual reply)──▶ edited

A review holds at most one active reply. Nothing leaves `posted`.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from reviewdesk.clock import utcnow
from reviewdesk.connectors import google_business, openai_replies
from reviewdesk.connectors.google_business import QuotaExceededError
from reviewdesk.models import Review, Tenant, User
from reviewdesk.models.review import REPLY_DRAFTED, REPLY_EDITED, REPLY_NONE, REPLY_POSTED
from reviewdesk.pipeline.credentials import (
    ensure_valid_token,
    resolve_account_id,
    start_cooldown,
)

logger = logging.getLogger(__name__)

ReplyGenerator = Callable[..., str]


class ReplyStateError(Exception):
    """Requested transition is not allowed from the review's current reply state."""


def generate(review: Review, db: Session, generator: Optional[ReplyGenerator] = None) -> str:
    """none -> drafted. Raises ReplyStateError if any reply already exists."""
    if review.reply_status == REPLY_POSTED:
        raise ReplyStateError("This review already has a reply posted to Google")
    if review.reply_status != REPLY_NONE:
        raise ReplyStateError("This review already has a reply. Edit or approve the existing draft.")
    generator = generator or openai_replies.generate_reply
    tenant = review.tenant
    text = generator(review.review_text or "", review.rating, tenant.business_name, tenant.tone)
    apply_draft(review, text)
    db.commit()
    logger.info("Generated AI reply for review %s", review.id)
    return text


def apply_draft(review: Review, text: str) -> None:
    review.ai_generated_reply = text
    review.ai_reply_generated_at = utcnow()
    review.edited_reply = text
    review.final_reply = text
    review.reply_status = REPLY_DRAFTED
    review.approval_status = "pending"


def edit(review: Review, text: str, db: Session) -> None:
    """drafted|edited|none -> edited. Posted replies are immutable."""
    if review.reply_status == REPLY_POSTED:
        raise ReplyStateError("Cannot edit reply that has already been posted to Google")
    text = (text or "").strip()
    if not text:
        raise ReplyStateError("Edited reply is required")
    review.edited_reply = text
    review.final_reply = text
    review.reply_status = REPLY_EDITED
    db.commit()
    logger.info("Reply updated for review %s", review.id)


def approve(
    review: Review,
    db: Session,
    approver: Optional[User] = None,
    edited_reply: Optional[str] = None,
) -> None:
    """drafted|edited -> posted. Posts to Google first; the review only changes if that succeeds."""
    if review.reply_status == REPLY_POSTED:
        raise ReplyStateError("Reply already posted to Google")
    override = (edited_reply or "").strip() or None
    text = override or review.final_reply or review.edited_reply or review.ai_generated_reply
    if not text:
        raise ReplyStateError("No reply available to post. Please generate or provide a reply first.")

    tenant = review.tenant
    access_token = ensure_valid_token(tenant, db)
    account_id = review.location.google_account_id or resolve_account_id(tenant, db, access_token)

    result = _post(tenant, review, account_id, access_token, text)
    if override:
        review.edited_reply = override
    mark_posted(review, text, result, approver)
    db.commit()
    logger.info("Reply approved and posted to Google for review %s", review.id)


def _post(tenant: Tenant, review: Review, account_id: str, access_token: str, text: str) -> dict:
    try:
        return google_business.post_reply(
            access_token,
            account_id,
            review.location.google_location_id,
            review.google_review_id,
            text,
        )
    except QuotaExceededError as exc:
        raise start_cooldown(tenant.id) from exc


def mark_posted(review: Review, text: str, result: dict, approver: Optional[User] = None) -> None:
    now = utcnow()
    review.final_reply = result.get("comment") or text
    review.reply_status = REPLY_POSTED
    review.approval_status = "posted"
    review.approved_by_id = approver.id if approver else None
    review.approved_at = now
    review.posted_to_google = True
    review.posted_at = result.get("posted_at") or now
    review.google_reply_id = result.get("reply_id")
    review.has_reply = True


def should_auto_approve(tenant: Tenant, rating: int, sentiment: str) -> bool:
    rules = tenant.auto_approval
    min_rating = rules.get("min_rating")
    min_rating = 4 if min_rating is None else int(min_rating)
    if rating < min_rating:
        return False
    return bool(rules.get(sentiment.lower()))


def auto_reply(
    review: Review,
    tenant: Tenant,
    account_id: str,
    access_token: str,
    generator: Optional[ReplyGenerator] = None,
    approver: Optional[User] = None,
) -> bool:
    """
    Draft a reply for a freshly synced review and post it when the tenant's
    auto-approval rules match. Returns True if the reply was posted.
    The caller commits.
    """
    generator = generator or openai_replies.generate_reply
    text = generator(review.review_text or "", review.rating, tenant.business_name, tenant.tone)
    apply_draft(review, text)
    if not should_auto_approve(tenant, review.rating, review.sentiment):
        logger.info("Generated draft reply for review %s", review.google_review_id)
        return False
    result = _post(tenant, review, account_id, access_token, text)
    mark_posted(review, text, result, approver)
    logger.info("Auto-approved and posted reply for review %s", review.google_review_id)
    return True
