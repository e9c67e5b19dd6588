"""Google Business Profile connection: OAuth flow, status, location and review sync."""
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from reviewdesk.api.auth import get_user_tenant, require_roles
from reviewdesk.api.errors import quota_exception, service_errors
from reviewdesk.clock import as_naive_utc, utcnow
from reviewdesk.config import settings
from reviewdesk.connectors import google_business
from reviewdesk.connectors.google_business import GoogleAPIError, NoBusinessAccountError
from reviewdesk.database import get_db
from reviewdesk.models import Location, Tenant, User
from reviewdesk.models.user import ROLE_CLIENT_OWNER, ROLE_STAFF
from reviewdesk.pipeline import sync as sync_pipeline
from reviewdesk.pipeline.credentials import (
    QuotaCooldownError,
    check_cooldown,
    ensure_valid_token,
    resolve_account_id,
    store_tokens,
)
from reviewdesk.pipeline.throttle import get_location_cache
from reviewdesk.schemas import (
    MAX_LEN_OAUTH_CODE,
    MAX_LEN_STATE,
    AuthUrlResponse,
    BusinessAccountCheck,
    ConnectionStatus,
    InitialSyncResult,
    LocationOut,
    LocationSyncResult,
    ReviewSyncResult,
)

router = APIRouter()
logger = logging.getLogger(__name__)

TenantIdPath = Path(..., gt=0, le=2**31 - 1, description="Tenant ID (positive integer)")

owner_only = require_roles(ROLE_CLIENT_OWNER)
tenant_users = require_roles(ROLE_CLIENT_OWNER, ROLE_STAFF)


TOKEN_EXCHANGE_FAILED = "token_exchange_failed"


def state_for(tenant_id: int) -> str:
    return f"tenant_{tenant_id}"


def tenant_id_from_state(state: str) -> int:
    """Parse "tenant_<id>"; ValueError on anything else."""
    if not state.startswith("tenant_"):
        raise ValueError("Invalid state parameter")
    suffix = state[len("tenant_"):]
    if not (suffix.isascii() and suffix.isdigit()):
        raise ValueError("Invalid state parameter")
    tenant_id = int(suffix)
    if tenant_id <= 0:
        raise ValueError("Invalid state parameter")
    return tenant_id


def _success_redirect(connected: bool, error: str = "") -> RedirectResponse:
    url = f"{settings.frontend_url}/onboarding/success?connected={'true' if connected else 'false'}"
    if error:
        url += f"&error={quote(error)}"
    return RedirectResponse(url=url)


def _auth_url_for(tenant: Tenant) -> AuthUrlResponse:
    url = google_business.get_authorization_url(state=state_for(tenant.id))
    logger.info("OAuth flow started for tenant %s", tenant.slug)
    return AuthUrlResponse(auth_url=url)


@router.get("/connect", response_model=AuthUrlResponse)
def connect(
    user: User = Depends(owner_only),
    tenant: Tenant = Depends(get_user_tenant),
):
    """Consent URL for the logged-in owner's tenant."""
    return _auth_url_for(tenant)


@router.get("/connect-onboarding/{tenant_id}", response_model=AuthUrlResponse)
def connect_onboarding(tenant_id: int = TenantIdPath, db: Session = Depends(get_db)):
    """Consent URL during onboarding, before the new owner has logged in."""
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise HTTPException(404, "Tenant not found")
    return _auth_url_for(tenant)


@router.get("/callback")
def callback(
    code: str = Query("", max_length=MAX_LEN_OAUTH_CODE),
    state: str = Query("", max_length=MAX_LEN_STATE),
    error: str = Query("", max_length=MAX_LEN_STATE),
    db: Session = Depends(get_db),
):
    """
    Store the tokens from Google's redirect and send the browser back to the frontend.
    Makes no Google API calls besides the token exchange.
    """
    if error:
        logger.warning("OAuth consent not granted: %s", error)
        return _success_redirect(False, error)
    if not code or not state:
        raise HTTPException(400, "Authorization code and state are required")
    try:
        tenant_id = tenant_id_from_state(state)
    except ValueError:
        raise HTTPException(400, "Invalid state parameter")
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise HTTPException(404, "Tenant not found")

    try:
        token = google_business.exchange_code_for_tokens(code)
        store_tokens(tenant, token)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("OAuth callback failed for tenant %s: %s", tenant_id, e)
        return _success_redirect(False, TOKEN_EXCHANGE_FAILED)

    logger.info("Google Business tokens saved for tenant %s", tenant.slug)
    return _success_redirect(True)


@router.get("/status", response_model=ConnectionStatus)
def status(
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    if not tenant.is_connected:
        return ConnectionStatus(is_connected=False)
    expiry = as_naive_utc(tenant.gbp_token_expiry)
    return ConnectionStatus(
        is_connected=True,
        account_id=tenant.gbp_account_id,
        token_expiry=expiry,
        is_token_expired=expiry is not None and expiry <= utcnow(),
        locations_count=db.query(Location).filter(Location.tenant_id == tenant.id).count(),
    )


@router.post("/disconnect")
def disconnect(
    user: User = Depends(owner_only),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    """Revoke (best effort) and forget the tenant's Google credentials."""
    token = tenant.gbp_access_token or tenant.gbp_refresh_token
    if token:
        try:
            google_business.revoke_token(token)
        except Exception as e:
            logger.warning("Token revoke failed for tenant %s: %s", tenant.id, e)
    tenant.clear_google_credentials()
    db.commit()
    get_location_cache().invalidate(("locations", tenant.id))
    logger.info("Google Business account disconnected for tenant %s", tenant.slug)
    return {"message": "Google Business account disconnected successfully"}


@router.get("/verify-business-account", response_model=BusinessAccountCheck)
def verify_business_account(
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    """Confirm the connected Google account owns a Business Profile; stores its id."""
    try:
        check_cooldown(tenant.id)
    except QuotaCooldownError as e:
        raise quota_exception(e)
    if not tenant.is_connected:
        raise HTTPException(400, "Google account not connected. Please connect first.")
    if tenant.gbp_account_id:
        return BusinessAccountCheck(
            has_business_account=True,
            account_id=tenant.gbp_account_id,
            cached=True,
            message="Google Business Profile already verified!",
        )

    with service_errors("Business account verification"):
        access_token = ensure_valid_token(tenant, db)
        try:
            account_id = resolve_account_id(tenant, db, access_token)
        except NoBusinessAccountError:
            return BusinessAccountCheck(
                has_business_account=False,
                message="You don't have a Google Business account. "
                        "Please create a Google Business Profile first to use this feature.",
            )
        except GoogleAPIError as e:
            if e.status_code != 403:
                raise
            return BusinessAccountCheck(
                has_business_account=False,
                message="This Google account has no access to a Google Business Profile.",
            )
    return BusinessAccountCheck(
        has_business_account=True,
        account_id=account_id,
        message="Google Business Profile found successfully!",
    )


@router.post("/sync-locations", response_model=LocationSyncResult)
def sync_locations(
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    with service_errors("Location sync"):
        result = sync_pipeline.sync_locations(tenant, db)
    return LocationSyncResult(
        account_id=result["account_id"],
        locations_found=result["total"],
        locations_saved=result["saved"],
        locations_skipped=result["skipped"],
    )


@router.get("/locations", response_model=list[LocationOut])
def locations(
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    """Locations already saved for the tenant (no Google call)."""
    return (
        db.query(Location)
        .filter(Location.tenant_id == tenant.id, Location.is_active == True)  # noqa: E712
        .order_by(Location.name)
        .all()
    )


@router.post("/sync-reviews", response_model=ReviewSyncResult)
def sync_reviews(
    max_pages: int = Query(1, ge=1, le=100),
    user: User = Depends(tenant_users),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    """Sync reviews for all of the tenant's locations, one location at a time."""
    with service_errors("Review sync"):
        return sync_pipeline.sync_tenant_reviews(tenant, db, max_pages=max_pages)


@router.post("/initial-sync", response_model=InitialSyncResult)
def initial_sync(
    user: User = Depends(owner_only),
    tenant: Tenant = Depends(get_user_tenant),
    db: Session = Depends(get_db),
):
    """Account, locations and all reviews, once per tenant."""
    with service_errors("Initial sync"):
        return sync_pipeline.initial_sync(tenant, db)
