"""
Shared fixtures: in-memory database, API client, users and tokens.

Settings are read at import time, so test values go into the environment first.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("GOOGLE_CALL_DELAY_SECONDS", "0")
os.environ.setdefault("GOOGLE_RETRY_INITIAL_DELAY", "0")
os.environ.setdefault("GOOGLE_RETRY_MAX_DELAY", "0")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reviewdesk.api.auth_routes import issue_token
from reviewdesk.clock import utcnow
from reviewdesk.database import Base, get_db
from reviewdesk.main import app
from reviewdesk.middleware.rate_limit import reset_counter
from reviewdesk.models import Location, Review, Tenant, User
from reviewdesk.models.review import sentiment_for_rating
from reviewdesk.models.user import ROLE_ADMIN, ROLE_CLIENT_OWNER, ROLE_STAFF
from reviewdesk.pipeline import throttle
from reviewdesk.pipeline.quota import reset_monitor
from reviewdesk.security import hash_password

PASSWORD = "secret123"


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def fresh_guards():
    throttle.reset_all()
    reset_monitor()
    reset_counter()
    yield
    throttle.reset_all()
    reset_monitor()
    reset_counter()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_tenant(db, slug="acme", connected=False, **kwargs):
    tenant = Tenant(name=slug.title(), slug=slug, business_name=f"{slug.title()} Cafe", is_active=True, **kwargs)
    if connected:
        tenant.gbp_access_token = "access-token"
        tenant.gbp_refresh_token = "refresh-token"
        tenant.gbp_token_expiry = utcnow() + timedelta(hours=1)
        tenant.gbp_account_id = "accounts/100"
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


def make_user(db, email, role, tenant=None, password=PASSWORD, is_active=True):
    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        tenant_id=tenant.id if tenant else None,
        first_name="Test",
        last_name=role.title(),
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_location(db, tenant, google_location_id="locations/1", name="Main Street"):
    loc = Location(
        tenant_id=tenant.id,
        google_location_id=google_location_id,
        google_account_id=tenant.gbp_account_id,
        name=name,
        slug=name.lower().replace(" ", "-"),
    )
    db.add(loc)
    db.commit()
    db.refresh(loc)
    return loc


def make_review(db, location, rating=5, text="Great service", google_review_id=None, days_ago=0, **kwargs):
    review = Review(
        tenant_id=location.tenant_id,
        location_id=location.id,
        google_review_id=google_review_id or f"r-{location.id}-{rating}-{days_ago}-{text[:8]}",
        reviewer_name="Pat",
        rating=rating,
        review_text=text,
        sentiment=sentiment_for_rating(rating),
        review_created_at=utcnow() - timedelta(days=days_ago),
        **kwargs,
    )
    db.add(review)
    db.commit()
    db.refresh(review)
    return review


def auth_headers(user):
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest.fixture
def tenant(db):
    return make_tenant(db, "acme", connected=True)


@pytest.fixture
def location(db, tenant):
    return make_location(db, tenant)


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", ROLE_ADMIN)


@pytest.fixture
def owner(db, tenant):
    return make_user(db, "owner@example.com", ROLE_CLIENT_OWNER, tenant)


@pytest.fixture
def staff(db, tenant):
    return make_user(db, "staff@example.com", ROLE_STAFF, tenant)


@pytest.fixture
def posted_replies(monkeypatch):
    """Record post_reply calls instead of hitting Google."""
    from reviewdesk.connectors import google_business

    calls = []

    def fake_post_reply(access_token, account_id, location_id, review_id, comment):
        calls.append({"account_id": account_id, "location_id": location_id, "review_id": review_id,
                      "comment": comment})
        return {"reply_id": f"{account_id}/{location_id}/reviews/{review_id}/reply", "posted_at": utcnow()}

    monkeypatch.setattr(google_business, "post_reply", fake_post_reply)
    return calls


@pytest.fixture
def ai_reply(monkeypatch):
    """Deterministic reply generator."""
    from reviewdesk.connectors import openai_replies

    def fake_generate(review_text, rating, business_name=None, tone=None, client=None):
        return f"Thanks for the {rating}-star review!"

    monkeypatch.setattr(openai_replies, "generate_reply", fake_generate)
