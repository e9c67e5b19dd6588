"""User model (ADMIN, CLIENT_OWNER, STAFF)."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from reviewdesk.database import Base

ROLE_ADMIN = "ADMIN"
ROLE_CLIENT_OWNER = "CLIENT_OWNER"
ROLE_STAFF = "STAFF"
ROLES = (ROLE_ADMIN, ROLE_CLIENT_OWNER, ROLE_STAFF)


class User(Base):
    """Login identity. Non-admin users always belong to exactly one tenant."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(128), nullable=False)
    role = Column(String(20), nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="users")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
