"""Review listing, on-demand fetch and the reply workflow endpoints."""
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Query as SAQuery, Session, joinedload

from reviewdesk.api.auth import ensure_tenant_access, require_roles
from reviewdesk.api.errors import service_errors
from reviewdesk.database import get_db
from reviewdesk.models import Location, Review, Tenant, User
from reviewdesk.models.user import ROLE_ADMIN, ROLE_CLIENT_OWNER, ROLE_STAFF
from reviewdesk.pipeline import sync as sync_pipeline
from reviewdesk.replies import workflow
from reviewdesk.schemas import (
    ApproveReplyBody,
    EditReplyBody,
    FetchReviewsBody,
    FetchReviewsResult,
    GeneratedReply,
    Pagination,
    ReplyPosted,
    ReplyUpdated,
    ReviewList,
    ReviewOut,
)

router = APIRouter()
logger = logging.getLogger(__name__)

ReviewIdPath = Path(..., gt=0, description="Review ID (positive integer)")

readers = require_roles(ROLE_ADMIN, ROLE_CLIENT_OWNER, ROLE_STAFF)
writers = require_roles(ROLE_ADMIN, ROLE_CLIENT_OWNER)


def review_out(review: Review) -> ReviewOut:
    out = ReviewOut.model_validate(review)
    if review.location is not None:
        out.location_name = review.location.name
    if review.tenant is not None:
        out.tenant_slug = review.tenant.slug
        out.business_name = review.tenant.business_name
    return out


def filter_reviews(q: SAQuery, replied: Optional[bool], rating: Optional[int]) -> SAQuery:
    if replied is not None:
        q = q.filter(Review.has_reply == replied)
    if rating is not None:
        q = q.filter(Review.rating == rating)
    return q


def paginate(q: SAQuery, page: int, limit: int) -> ReviewList:
    """Newest first, with a pagination block."""
    total = q.count()
    rows = (
        q.options(joinedload(Review.location), joinedload(Review.tenant))
        .order_by(Review.review_created_at.desc(), Review.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ReviewList(
        reviews=[review_out(r) for r in rows],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


def get_review_for(user: User, review_id: int, db: Session) -> Review:
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise HTTPException(404, "Review not found")
    ensure_tenant_access(user, review.tenant_id)
    return review


@router.get("", response_model=ReviewList)
def list_reviews(
    replied: Optional[bool] = Query(None, description="Filter by whether the review has a reply"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(readers),
    db: Session = Depends(get_db),
):
    """Reviews visible to the caller: all tenants for admins, their own tenant otherwise."""
    q = db.query(Review)
    if not user.is_admin:
        q = q.filter(Review.tenant_id == user.tenant_id)
    return paginate(filter_reviews(q, replied, rating), page, limit)


@router.post("/fetch", response_model=FetchReviewsResult)
def fetch_reviews(
    body: FetchReviewsBody,
    user: User = Depends(writers),
    db: Session = Depends(get_db),
):
    """Pull the latest reviews for one location and auto-reply to new ones."""
    location = db.query(Location).filter(Location.id == body.location_id).first()
    if not location:
        raise HTTPException(404, "Location not found")
    ensure_tenant_access(user, location.tenant_id)
    if not location.google_location_id:
        raise HTTPException(400, "Location is not linked to Google Business Profile")
    tenant = db.query(Tenant).filter(Tenant.id == location.tenant_id).first()

    with service_errors(f"Review fetch for tenant {tenant.id}"):
        counts = sync_pipeline.fetch_location_reviews(tenant, location, db, actor=user)
    return FetchReviewsResult(
        total_fetched=counts["total_fetched"],
        new_reviews=counts["new"],
        updated_reviews=counts["updated"],
        auto_posted=counts["auto_posted"],
    )


@router.get("/{review_id}", response_model=ReviewOut)
def get_review(
    review_id: int = ReviewIdPath,
    user: User = Depends(readers),
    db: Session = Depends(get_db),
):
    return review_out(get_review_for(user, review_id, db))


@router.post("/{review_id}/generate-reply", response_model=GeneratedReply)
def generate_reply(
    review_id: int = ReviewIdPath,
    user: User = Depends(writers),
    db: Session = Depends(get_db),
):
    """Draft a reply with the tenant's tone settings."""
    review = get_review_for(user, review_id, db)
    with service_errors(f"Reply generation for tenant {review.tenant_id}"):
        text = workflow.generate(review, db)
    return GeneratedReply(review_id=review.id, ai_reply=text, generated_at=review.ai_reply_generated_at)


@router.put("/{review_id}/reply", response_model=ReplyUpdated)
def update_reply(
    body: EditReplyBody,
    review_id: int = ReviewIdPath,
    user: User = Depends(writers),
    db: Session = Depends(get_db),
):
    review = get_review_for(user, review_id, db)
    with service_errors("Reply edit"):
        workflow.edit(review, body.edited_reply, db)
    return ReplyUpdated(review_id=review.id, edited_reply=review.edited_reply, final_reply=review.final_reply)


@router.post("/{review_id}/approve-reply", response_model=ReplyPosted)
def approve_reply(
    body: Optional[ApproveReplyBody] = None,
    review_id: int = ReviewIdPath,
    user: User = Depends(writers),
    db: Session = Depends(get_db),
):
    """Post the reply to Google. The review is only marked posted if Google accepts it."""
    review = get_review_for(user, review_id, db)
    edited = body.edited_reply if body else None
    with service_errors(f"Reply posting for tenant {review.tenant_id}"):
        workflow.approve(review, db, approver=user, edited_reply=edited)
    return ReplyPosted(
        review_id=review.id,
        final_reply=review.final_reply,
        edited_reply=review.edited_reply,
        approved_at=review.approved_at,
        posted_at=review.posted_at,
    )
