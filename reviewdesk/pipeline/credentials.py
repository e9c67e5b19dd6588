"""Per-tenant Google credentials: token refresh, account lookup, cooldown checks."""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from reviewdesk.clock import as_naive_utc, from_timestamp, utcnow
from reviewdesk.connectors import google_business
from reviewdesk.connectors.google_business import QuotaExceededError
from reviewdesk.models import Tenant
from reviewdesk.pipeline.throttle import get_account_lookups, get_cooldowns

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class GoogleConnectionError(Exception):
    """Tenant has no usable Google connection (not connected, or refresh failed)."""


class QuotaCooldownError(Exception):
    """Google calls are paused for this tenant after a quota error."""

    def __init__(self, retry_after: int, message: str = "Google API quota cooldown active. Please retry later."):
        super().__init__(message)
        self.retry_after = retry_after


def check_cooldown(tenant_id: int) -> None:
    remaining = get_cooldowns().remaining(tenant_id)
    if remaining:
        logger.info("Blocked Google call for tenant %s: cooldown %ss remaining", tenant_id, remaining)
        raise QuotaCooldownError(remaining)


def start_cooldown(tenant_id: int) -> QuotaCooldownError:
    """Record a quota error and return the error to raise to the caller."""
    seconds = get_cooldowns().start(tenant_id)
    return QuotaCooldownError(seconds, "Google API quota exceeded. Please try again later.")


def store_tokens(tenant: Tenant, token: dict) -> None:
    """Persist an OAuth token response; keep the old refresh token when Google omits one."""
    tenant.gbp_access_token = token["access_token"]
    if token.get("refresh_token"):
        tenant.gbp_refresh_token = token["refresh_token"]
    else:
        logger.warning("No refresh token received for tenant %s; user may need to re-consent", tenant.id)
    if token.get("expires_at"):
        tenant.gbp_token_expiry = from_timestamp(token["expires_at"])
    elif token.get("expires_in"):
        tenant.gbp_token_expiry = utcnow() + timedelta(seconds=int(token["expires_in"]))
    else:
        tenant.gbp_token_expiry = utcnow() + DEFAULT_TOKEN_LIFETIME


def ensure_valid_token(tenant: Tenant, db: Session) -> str:
    """Return an access token, refreshing it when it expires within five minutes."""
    if not tenant.is_connected:
        raise GoogleConnectionError("Google Business Profile not connected. Please connect your account first.")
    # Never refresh during a cooldown: the refresh itself counts against quota
    check_cooldown(tenant.id)

    expiry = as_naive_utc(tenant.gbp_token_expiry)
    if expiry is not None and utcnow() < expiry - TOKEN_REFRESH_MARGIN:
        return tenant.gbp_access_token

    logger.info("Refreshing Google access token for tenant %s", tenant.id)
    try:
        token = google_business.refresh_tokens(tenant.gbp_refresh_token)
    except Exception as e:
        logger.error("Token refresh failed for tenant %s: %s", tenant.id, e)
        raise GoogleConnectionError("Failed to refresh Google access token. Please reconnect account.") from e
    store_tokens(tenant, token)
    db.commit()
    return tenant.gbp_access_token


def resolve_account_id(tenant: Tenant, db: Session, access_token: str) -> str:
    """
    The tenant's GBP account name. Stored on the tenant after the first lookup;
    concurrent lookups for one tenant share a single accounts.list call.
    """
    check_cooldown(tenant.id)
    if tenant.gbp_account_id:
        return tenant.gbp_account_id

    def lookup() -> str:
        logger.info("Looking up Google Business account for tenant %s", tenant.id)
        return google_business.get_primary_account_id(access_token)

    try:
        account_id = get_account_lookups().do(("account", tenant.id), lookup)
    except QuotaExceededError as exc:
        raise start_cooldown(tenant.id) from exc

    tenant.gbp_account_id = account_id
    db.commit()
    logger.info("Stored Google account id for tenant %s", tenant.id)
    return account_id
