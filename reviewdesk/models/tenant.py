"""Tenant (business customer) model."""
import json

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from reviewdesk.database import Base

DEFAULT_TONE = {"style": "professional", "keywords": "", "max_length": 200}
DEFAULT_AUTO_APPROVAL = {"positive": True, "neutral": False, "negative": False, "min_rating": 4}


class Tenant(Base):
    """Business customer using the platform."""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    business_name = Column(String(255), nullable=False)
    package_tier = Column(String(32), default="basic")  # basic, pro, enterprise
    is_active = Column(Boolean, default=True, index=True)
    settings_json = Column(Text)  # JSON: tone, auto_approval

    # Google Business Profile connection
    gbp_account_id = Column(String(100))  # "accounts/123..."
    gbp_access_token = Column(String(2048))
    gbp_refresh_token = Column(String(512))
    gbp_token_expiry = Column(DateTime(timezone=True))
    gbp_initial_sync_done = Column(Boolean, default=False)
    gbp_last_sync_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    users = relationship("User", back_populates="tenant")
    locations = relationship("Location", back_populates="tenant")
    reviews = relationship("Review", back_populates="tenant")

    @property
    def settings(self) -> dict:
        return json.loads(self.settings_json) if self.settings_json else {}

    @settings.setter
    def settings(self, value: dict) -> None:
        self.settings_json = json.dumps(value or {})

    @property
    def tone(self) -> dict:
        return {**DEFAULT_TONE, **(self.settings.get("tone") or {})}

    @property
    def auto_approval(self) -> dict:
        return {**DEFAULT_AUTO_APPROVAL, **(self.settings.get("auto_approval") or {})}

    @property
    def is_connected(self) -> bool:
        """Connected iff both halves of the OAuth token pair are stored."""
        return bool(self.gbp_access_token and self.gbp_refresh_token)

    def clear_google_credentials(self) -> None:
        self.gbp_account_id = None
        self.gbp_access_token = None
        self.gbp_refresh_token = None
        self.gbp_token_expiry = None
