"""Cross-tenant views for platform admins."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from reviewdesk.api.auth import require_roles
from reviewdesk.api.reviews import filter_reviews, paginate, review_out
from reviewdesk.database import get_db
from reviewdesk.models import Review, Tenant, User
from reviewdesk.models.user import ROLE_ADMIN
from reviewdesk.schemas import (
    AdminDashboard,
    AdminStats,
    ClientList,
    ClientOut,
    ClientStatus,
    MAX_LEN_SLUG,
    ReviewList,
)

router = APIRouter()
logger = logging.getLogger(__name__)

admin_only = require_roles(ROLE_ADMIN)
ClientIdPath = Path(..., gt=0, description="Client (tenant) ID")


@router.get("/dashboard", response_model=AdminDashboard)
def dashboard(user: User = Depends(admin_only), db: Session = Depends(get_db)):
    """Platform totals and the ten most recent reviews."""
    stats = AdminStats(
        total_clients=db.query(Tenant).count(),
        active_clients=db.query(Tenant).filter(Tenant.is_active == True).count(),  # noqa: E712
        total_users=db.query(User).count(),
        total_reviews=db.query(Review).count(),
        pending_reviews=db.query(Review).filter(Review.approval_status == "pending").count(),
        replied_reviews=db.query(Review).filter(Review.has_reply == True).count(),  # noqa: E712
    )
    recent = (
        db.query(Review)
        .options(joinedload(Review.location), joinedload(Review.tenant))
        .order_by(Review.review_created_at.desc(), Review.id.desc())
        .limit(10)
        .all()
    )
    return AdminDashboard(stats=stats, recent_reviews=[review_out(r) for r in recent])


@router.get("/reviews", response_model=ReviewList)
def reviews(
    tenant: Optional[str] = Query(None, max_length=MAX_LEN_SLUG, description="Tenant slug"),
    replied: Optional[bool] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    q = db.query(Review)
    if tenant:
        q = q.join(Tenant, Review.tenant_id == Tenant.id).filter(Tenant.slug == tenant.lower())
    return paginate(filter_reviews(q, replied, rating), page, limit)


@router.get("/clients", response_model=ClientList)
def clients(user: User = Depends(admin_only), db: Session = Depends(get_db)):
    """All tenants, newest first, with user and review counts."""
    user_counts = dict(
        db.query(User.tenant_id, func.count(User.id)).filter(User.tenant_id.isnot(None)).group_by(User.tenant_id).all()
    )
    review_counts = dict(db.query(Review.tenant_id, func.count(Review.id)).group_by(Review.tenant_id).all())
    tenants = db.query(Tenant).order_by(Tenant.created_at.desc(), Tenant.id.desc()).all()

    result = []
    for t in tenants:
        out = ClientOut.model_validate(t)
        out.user_count = user_counts.get(t.id, 0)
        out.review_count = review_counts.get(t.id, 0)
        result.append(out)
    return ClientList(clients=result, total=len(result))


@router.put("/clients/{client_id}/toggle-status", response_model=ClientStatus)
def toggle_status(
    client_id: int = ClientIdPath,
    user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Activate or deactivate a tenant. Users of an inactive tenant cannot log in."""
    tenant = db.query(Tenant).filter(Tenant.id == client_id).first()
    if not tenant:
        raise HTTPException(404, "Client not found")
    tenant.is_active = not tenant.is_active
    db.commit()
    logger.info("Client %s %s by admin %s", tenant.slug, "activated" if tenant.is_active else "deactivated", user.id)
    return ClientStatus(client_id=tenant.id, slug=tenant.slug, is_active=tenant.is_active)
