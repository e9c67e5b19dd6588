"""Login, self-service client registration and token verification."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from reviewdesk.api.auth import get_current_user
from reviewdesk.database import get_db
from reviewdesk.models import Tenant, User
from reviewdesk.models.user import ROLE_CLIENT_OWNER
from reviewdesk.schemas import (
    LoginBody,
    LoginResponse,
    RegisterClientBody,
    RegisterResponse,
    TenantSummary,
    UserOut,
)
from reviewdesk.security import create_access_token, hash_password, verify_password
from reviewdesk.text import slugify

router = APIRouter()
logger = logging.getLogger(__name__)


def issue_token(user: User) -> str:
    tenant = user.tenant
    return create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "tenant": tenant.id if tenant else None,
        "tenant_slug": tenant.slug if tenant else None,
    })


def _tenant_summary(user: User):
    return TenantSummary.model_validate(user.tenant) if user.tenant else None


@router.post("/login", response_model=LoginResponse)
def login(body: LoginBody, db: Session = Depends(get_db)):
    """Exchange email + password for a bearer token."""
    email = body.email.strip().lower()
    if not email or not body.password:
        raise HTTPException(400, "Email and password are required")

    user = db.query(User).filter(User.email == email).first()
    # Same message for unknown email and wrong password
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(401, "Invalid credentials")
    if not user.is_active:
        raise HTTPException(401, "Account is disabled")
    if user.tenant is not None and not user.tenant.is_active:
        raise HTTPException(401, "Client account is disabled")

    logger.info("User logged in: id=%s role=%s", user.id, user.role)
    return LoginResponse(
        token=issue_token(user),
        role=user.role,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        tenant=_tenant_summary(user),
    )


@router.post("/register/client", response_model=RegisterResponse, status_code=201)
def register_client(body: RegisterClientBody, db: Session = Depends(get_db)):
    """Create a tenant and its CLIENT_OWNER in one step."""
    email = body.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(409, "Email already registered")

    slug = slugify(body.slug or body.business_name)
    if not slug:
        raise HTTPException(400, "Could not derive a valid slug from the business name")
    if db.query(Tenant).filter(Tenant.slug == slug).first():
        raise HTTPException(409, "Business slug already taken")

    tenant = Tenant(
        name=body.business_name.strip(),
        slug=slug,
        business_name=body.business_name.strip(),
        package_tier="basic",
        is_active=True,
    )
    db.add(tenant)
    db.flush()
    user = User(
        email=email,
        password_hash=hash_password(body.password),
        role=ROLE_CLIENT_OWNER,
        tenant_id=tenant.id,
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Client registered: tenant id=%s slug=%s", tenant.id, tenant.slug)

    return RegisterResponse(
        token=issue_token(user),
        role=user.role,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        tenant=_tenant_summary(user),
    )


@router.get("/verify", response_model=UserOut)
def verify(user: User = Depends(get_current_user)):
    """Return the profile behind the bearer token."""
    return user
