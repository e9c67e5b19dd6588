"""SQLAlchemy models."""
from reviewdesk.models.tenant import Tenant
from reviewdesk.models.user import User
from reviewdesk.models.location import Location
from reviewdesk.models.review import Review

__all__ = [
    "Tenant",
    "User",
    "Location",
    "Review",
]
