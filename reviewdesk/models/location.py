"""Business location model."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from reviewdesk.database import Base


class Location(Base):
    """A tenant's physical location as known to Google Business Profile."""

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    google_location_id = Column(String(100), unique=True, index=True)  # "locations/456..."
    google_account_id = Column(String(100))
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False)
    address = Column(String(500))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_location_tenant_slug"),
    )

    tenant = relationship("Tenant", back_populates="locations")
    reviews = relationship("Review", back_populates="location")
