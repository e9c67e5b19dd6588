"""Dashboard and review listing scoped to the caller's own tenant."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from reviewdesk.api.auth import get_user_tenant, require_roles
from reviewdesk.api.reviews import filter_reviews, paginate, review_out
from reviewdesk.clock import utcnow
from reviewdesk.database import get_db
from reviewdesk.models import Review, Tenant, User
from reviewdesk.models.user import ROLE_CLIENT_OWNER, ROLE_STAFF
from reviewdesk.schemas import ClientDashboard, ClientInfo, ClientStats, ReviewList

router = APIRouter()

tenant_users = require_roles(ROLE_CLIENT_OWNER, ROLE_STAFF)


@router.get("/dashboard", response_model=ClientDashboard)
def dashboard(
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    base = db.query(Review).filter(Review.tenant_id == tenant.id)
    total = base.count()
    replied = base.filter(Review.has_reply == True).count()  # noqa: E712
    avg = db.query(func.avg(Review.rating)).filter(Review.tenant_id == tenant.id).scalar()

    breakdown = {star: 0 for star in range(1, 6)}
    for rating, n in (
        db.query(Review.rating, func.count(Review.id))
        .filter(Review.tenant_id == tenant.id)
        .group_by(Review.rating)
        .all()
    ):
        if rating in breakdown:
            breakdown[rating] = n

    recent = (
        base.options(joinedload(Review.location), joinedload(Review.tenant))
        .order_by(Review.review_created_at.desc(), Review.id.desc())
        .limit(10)
        .all()
    )
    return ClientDashboard(
        client=ClientInfo(slug=tenant.slug, business_name=tenant.business_name, package_tier=tenant.package_tier),
        stats=ClientStats(
            total_reviews=total,
            replied_reviews=replied,
            pending_reviews=total - replied,
            average_rating=round(float(avg), 2) if avg is not None else 0.0,
            rating_breakdown=breakdown,
        ),
        recent_reviews=[review_out(r) for r in recent],
        timestamp=utcnow(),
    )


@router.get("/reviews", response_model=ReviewList)
def reviews(
    replied: Optional[bool] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    q = db.query(Review).filter(Review.tenant_id == tenant.id)
    return paginate(filter_reviews(q, replied, rating), page, limit)
