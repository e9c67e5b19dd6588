#!/usr/bin/env python3
"""Seed an admin, a demo tenant with owner/staff users, one location and sample reviews."""
import sys
from pathlib import Path
from datetime import timedelta
import random

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from reviewdesk.clock import utcnow
from reviewdesk.database import init_db, session_scope
from reviewdesk.models import Location, Review, Tenant, User
from reviewdesk.models.review import sentiment_for_rating
from reviewdesk.models.user import ROLE_ADMIN, ROLE_CLIENT_OWNER, ROLE_STAFF
from reviewdesk.security import hash_password

DEMO_PASSWORD = "demo1234"

SAMPLE_REVIEWS = [
    ("Sarah K.", 5, "Fantastic coffee and the staff remembered my order. Will be back!"),
    ("James T.", 4, "Great pastries, a bit crowded on weekends."),
    ("Priya N.", 3, "Decent espresso but the wait was long."),
    ("Mike R.", 2, "My latte was cold and nobody seemed to care."),
    ("Anonymous", 1, "Rude service at the counter. Disappointed."),
    ("Lena W.", 5, ""),
]


def get_or_create_user(db, email, role, tenant_id=None, first_name=None, last_name=None):
    user = db.query(User).filter(User.email == email).first()
    if user:
        print(f"Using user: {email}")
        return user
    user = User(
        email=email,
        password_hash=hash_password(DEMO_PASSWORD),
        role=role,
        tenant_id=tenant_id,
        first_name=first_name,
        last_name=last_name,
        is_active=True,
    )
    db.add(user)
    db.flush()
    print(f"Created {role} user: {email}")
    return user


def seed():
    init_db()
    with session_scope() as db:
        get_or_create_user(db, "admin@reviewdesk.local", ROLE_ADMIN, first_name="Platform", last_name="Admin")

        t = db.query(Tenant).filter(Tenant.slug == "demo-coffee").first()
        if not t:
            t = Tenant(
                name="Demo Coffee",
                slug="demo-coffee",
                business_name="Demo Coffee Roasters",
                package_tier="pro",
                is_active=True,
            )
            t.settings = {"tone": {"style": "friendly", "keywords": "coffee, community"}}
            db.add(t)
            db.flush()
            print(f"Created tenant: {t.id} ({t.slug})")
        else:
            print(f"Using tenant: {t.id} ({t.slug})")

        get_or_create_user(db, "owner@democoffee.local", ROLE_CLIENT_OWNER, t.id, "Olivia", "Owner")
        get_or_create_user(db, "staff@democoffee.local", ROLE_STAFF, t.id, "Sam", "Staff")

        loc = db.query(Location).filter(Location.tenant_id == t.id, Location.slug == "downtown").first()
        if not loc:
            loc = Location(
                tenant_id=t.id,
                google_location_id="locations/demo-downtown",
                google_account_id="accounts/demo",
                name="Downtown",
                slug="downtown",
                address="1 Main St, Springfield",
            )
            db.add(loc)
            db.flush()

        now = utcnow()
        created = 0
        for i, (name, rating, text) in enumerate(SAMPLE_REVIEWS):
            review_id = f"demo-review-{i + 1}"
            if db.query(Review).filter(Review.google_review_id == review_id).first():
                continue
            db.add(Review(
                tenant_id=t.id,
                location_id=loc.id,
                google_review_id=review_id,
                reviewer_name=name,
                rating=rating,
                review_text=text,
                sentiment=sentiment_for_rating(rating),
                review_created_at=now - timedelta(days=i * 3, hours=random.randint(0, 12)),
                has_reply=False,
            ))
            created += 1
        print(f"Created {created} sample reviews. Demo password for all users: {DEMO_PASSWORD}")


if __name__ == "__main__":
    seed()
