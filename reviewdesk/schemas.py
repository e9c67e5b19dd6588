"""
Pydantic schemas for the API with strict validation.

- All string inputs have explicit max_length to prevent DoS and injection.
- Request body models use extra="forbid" to reject unexpected fields.
"""
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict, EmailStr

# Shared max lengths for consistency and security (strict input validation)
MAX_LEN_NAME = 255
MAX_LEN_EMAIL = 320
MAX_LEN_PASSWORD = 128
MAX_LEN_SLUG = 100
MAX_LEN_REPLY = 4096
MAX_LEN_OAUTH_CODE = 512
MAX_LEN_STATE = 128

Role = Literal["ADMIN", "CLIENT_OWNER", "STAFF"]


# --- Auth ---

class LoginBody(BaseModel):
    """Missing credentials are a 400 from the route, not a 422."""
    model_config = ConfigDict(extra="forbid")
    email: str = Field("", max_length=MAX_LEN_EMAIL)
    password: str = Field("", max_length=MAX_LEN_PASSWORD)


class RegisterClientBody(BaseModel):
    """Self-service signup: creates a tenant and its CLIENT_OWNER."""
    model_config = ConfigDict(extra="forbid")
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=MAX_LEN_PASSWORD)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    business_name: str = Field(..., min_length=1, max_length=MAX_LEN_NAME)
    slug: Optional[str] = Field(None, max_length=MAX_LEN_SLUG)


class TenantSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    slug: str
    business_name: str


class LoginResponse(BaseModel):
    token: str
    role: Role
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    tenant: Optional[TenantSummary] = None


class RegisterResponse(LoginResponse):
    requires_google_connection: bool = True
    next_step: str = "Connect your Google Business account to start managing reviews"


class UserOut(BaseModel):
    """User profile; never includes the password hash."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    email: str
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    tenant: Optional[TenantSummary] = None


# --- Google OAuth ---

class AuthUrlResponse(BaseModel):
    auth_url: str
    message: str = "Redirect user to this URL to authorize Google Business access"


class ConnectionStatus(BaseModel):
    is_connected: bool
    account_id: Optional[str] = None
    token_expiry: Optional[datetime] = None
    is_token_expired: Optional[bool] = None
    locations_count: Optional[int] = None


class BusinessAccountCheck(BaseModel):
    has_business_account: bool
    account_id: Optional[str] = None
    cached: bool = False
    message: str


class LocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    google_location_id: Optional[str] = None
    created_at: Optional[datetime] = None


class LocationSyncResult(BaseModel):
    account_id: str
    locations_found: int
    locations_saved: int
    locations_skipped: int


class LocationReviewResult(BaseModel):
    location_id: int
    location_name: str
    status: Literal["success", "failed"]
    new: int = 0
    updated: int = 0
    error: Optional[str] = None


class ReviewSyncResult(BaseModel):
    total_new_reviews: int
    total_updated_reviews: int
    locations_processed: int
    location_results: list[LocationReviewResult]


class InitialSyncResult(BaseModel):
    already_synced: bool
    account_id: Optional[str] = None
    locations_found: int = 0
    locations_saved: int = 0
    reviews_new: int = 0
    reviews_updated: int = 0


# --- Reviews ---

class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    tenant_id: int
    location_id: int
    google_review_id: str
    reviewer_name: str
    rating: int
    review_text: Optional[str] = None
    sentiment: Optional[str] = None
    review_created_at: datetime
    has_reply: bool
    reply_status: str
    ai_generated_reply: Optional[str] = None
    ai_reply_generated_at: Optional[datetime] = None
    edited_reply: Optional[str] = None
    final_reply: Optional[str] = None
    approval_status: str
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    posted_to_google: bool
    posted_at: Optional[datetime] = None
    location_name: Optional[str] = None
    tenant_slug: Optional[str] = None
    business_name: Optional[str] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ReviewList(BaseModel):
    reviews: list[ReviewOut]
    pagination: Pagination


class FetchReviewsBody(BaseModel):
    model_config = ConfigDict(extra="forbid")
    location_id: int = Field(..., gt=0)


class FetchReviewsResult(BaseModel):
    total_fetched: int
    new_reviews: int
    updated_reviews: int
    auto_posted: int


class GeneratedReply(BaseModel):
    review_id: int
    ai_reply: str
    generated_at: datetime


class EditReplyBody(BaseModel):
    model_config = ConfigDict(extra="forbid")
    edited_reply: str = Field(..., min_length=1, max_length=MAX_LEN_REPLY)


class ApproveReplyBody(BaseModel):
    model_config = ConfigDict(extra="forbid")
    edited_reply: Optional[str] = Field(None, max_length=MAX_LEN_REPLY)


class ReplyUpdated(BaseModel):
    review_id: int
    edited_reply: str
    final_reply: str


class ReplyPosted(BaseModel):
    review_id: int
    final_reply: str
    edited_reply: Optional[str] = None
    approved_at: datetime
    posted_at: datetime


# --- Dashboards ---

class AdminStats(BaseModel):
    total_clients: int
    active_clients: int
    total_users: int
    total_reviews: int
    pending_reviews: int
    replied_reviews: int


class AdminDashboard(BaseModel):
    stats: AdminStats
    recent_reviews: list[ReviewOut]


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    slug: str
    business_name: str
    package_tier: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    user_count: int = 0
    review_count: int = 0


class ClientList(BaseModel):
    clients: list[ClientOut]
    total: int


class ClientStatus(BaseModel):
    client_id: int
    slug: str
    is_active: bool


class ClientInfo(BaseModel):
    slug: str
    business_name: str
    package_tier: Optional[str] = None


class ClientStats(BaseModel):
    total_reviews: int
    replied_reviews: int
    pending_reviews: int
    average_rating: float
    rating_breakdown: dict[int, int]


class ClientDashboard(BaseModel):
    client: ClientInfo
    stats: ClientStats
    recent_reviews: list[ReviewOut]
    timestamp: datetime


# --- Monitoring ---

class QuotaCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    daily_remaining: int
    per_100s_remaining: int
    reset_time: datetime


class QuotaReport(BaseModel):
    start: date
    end: date
    total_calls: int
    by_endpoint: dict[str, int]
    by_date: dict[str, int]


class QuotaStats(BaseModel):
    daily: dict[str, Any]
    per_100_seconds: dict[str, Any]
    status: Literal["OK", "WARNING", "CRITICAL"]
