"""Bearer token authentication and role guards."""
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from reviewdesk.database import get_db
from reviewdesk.models import Tenant, User
from reviewdesk.security import InvalidTokenError, decode_access_token


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="No token provided")
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Validate the Authorization: Bearer header and return the active user."""
    token = _bearer_token(authorization)
    try:
        claims = decode_access_token(token)
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_roles(*roles: str):
    """Dependency factory: 403 unless the current user has one of the roles."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


def get_user_tenant(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Tenant:
    """The caller's own tenant; admins have none."""
    if not user.tenant_id:
        raise HTTPException(status_code=403, detail="User is not associated with a tenant")
    tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


def ensure_tenant_access(user: User, tenant_id: int) -> None:
    """Non-admins may only touch records that belong to their own tenant."""
    if not user.is_admin and user.tenant_id != tenant_id:
        raise HTTPException(status_code=403, detail="Access denied")
