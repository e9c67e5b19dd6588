"""Review model with reply workflow fields."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Boolean, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from reviewdesk.database import Base

REPLY_NONE = "none"
REPLY_DRAFTED = "drafted"
REPLY_EDITED = "edited"
REPLY_POSTED = "posted"


def sentiment_for_rating(rating: int) -> str:
    if rating >= 4:
        return "Positive"
    if rating <= 2:
        return "Negative"
    return "Neutral"


class Review(Base):
    """A Google review and the single reply being prepared for it."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    google_review_id = Column(String(255), nullable=False, unique=True, index=True)

    reviewer_name = Column(String(500), nullable=False, default="Anonymous")
    rating = Column(Integer, nullable=False)  # 1-5
    review_text = Column(Text, default="")
    sentiment = Column(String(20), default="Neutral")  # Positive, Neutral, Negative
    review_created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    has_reply = Column(Boolean, default=False)

    # Reply workflow
    reply_status = Column(String(20), default=REPLY_NONE, nullable=False)  # none, drafted, edited, posted
    ai_generated_reply = Column(Text)
    ai_reply_generated_at = Column(DateTime(timezone=True))
    edited_reply = Column(Text)
    final_reply = Column(Text)
    approval_status = Column(String(20), default="pending")  # pending, approved, rejected, posted
    approved_by_id = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime(timezone=True))

    # Posting to Google
    posted_to_google = Column(Boolean, default=False)
    posted_at = Column(DateTime(timezone=True))
    google_reply_id = Column(String(255))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_reviews_tenant_has_reply", "tenant_id", "has_reply"),
        Index("ix_reviews_tenant_rating", "tenant_id", "rating"),
        Index("ix_reviews_tenant_approval", "tenant_id", "approval_status"),
    )

    tenant = relationship("Tenant", back_populates="reviews")
    location = relationship("Location", back_populates="reviews")
    approver = relationship("User")
