#!/usr/bin/env python3
"""
Show what AI reply drafting produces without calling OpenAI.

Replies come from rating-keyed templates. Run with --sample for built-in
reviews, or --tenant <slug> to draft replies for a seeded tenant's reviews
(add --save to store them as drafts, ready for PUT /api/reviews/{id}/reply).
"""
import argparse
import random
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from reviewdesk.database import init_db, session_scope
from reviewdesk.models import Review, Tenant
from reviewdesk.models.review import REPLY_NONE, sentiment_for_rating
from reviewdesk.replies import workflow

TEMPLATES = {
    5: [
        "Thank you so much for your wonderful 5-star review! We're thrilled to hear about your positive "
        "experience with {business}. Your feedback truly motivates our team to keep delivering excellent service.",
        "We're so grateful for your kind words! It's customers like you who make what we do at {business} so "
        "rewarding. Thank you for choosing us, and we look forward to serving you again soon!",
        "What a fantastic review! Thank you for taking the time to share your experience. We're delighted we "
        "could exceed your expectations at {business}.",
    ],
    4: [
        "Thank you for your 4-star review! We're pleased to hear you had a good experience with {business}. "
        "We appreciate your feedback and are always working to improve.",
        "We appreciate your positive feedback! Thank you for choosing {business}. If there's anything we can do "
        "to make your next visit a 5-star experience, please let us know.",
    ],
    3: [
        "Thank you for your honest feedback. We're glad we could meet your expectations at {business}, and we're "
        "always looking for ways to improve. We'd love to give you an even better experience next time.",
        "We appreciate you taking the time to review {business}. Your feedback helps us understand where we can "
        "improve, and we hope to exceed your expectations in the future.",
    ],
    2: [
        "We're sorry your experience with {business} didn't fully meet your expectations. Your feedback matters "
        "to us and we'd like to make things right. Please reach out so we can address your concerns.",
        "Thank you for bringing this to our attention. We sincerely apologize for not meeting your expectations "
        "at {business}, and we'd appreciate the chance to discuss this further.",
    ],
    1: [
        "We sincerely apologize for your disappointing experience with {business}. This is not the level of "
        "service we strive to provide. Please contact us directly so we can make this right.",
        "We're truly sorry to hear about your experience. Your feedback is taken very seriously at {business}, "
        "and we'd like to make amends. Please reach out to our team so we can resolve this.",
    ],
}

SAMPLE_REVIEWS = [
    ("Sarah K.", 5, "Fantastic coffee and friendly staff."),
    ("James T.", 4, "Great pastries, a bit crowded on weekends."),
    ("Priya N.", 3, "Decent espresso but the wait was long."),
    ("Mike R.", 2, "My latte was cold."),
    ("Anonymous", 1, "Rude service at the counter."),
]


def mock_reply(rating: int, business_name: str, rng: Optional[random.Random] = None) -> str:
    """Template reply for a rating; unknown ratings get the 3-star wording."""
    rng = rng or random.Random()
    options = TEMPLATES.get(rating, TEMPLATES[3])
    return rng.choice(options).format(business=business_name)


def draft_replies(db, tenant_slug: str, limit: int = 5, save: bool = False,
                  rng: Optional[random.Random] = None) -> list[dict]:
    """
    Mock replies for the tenant's newest reviews that have no reply yet.
    With save=True each one is stored as a draft through the reply workflow.
    """
    tenant = db.query(Tenant).filter(Tenant.slug == tenant_slug).first()
    if not tenant:
        raise LookupError(f"Tenant not found: {tenant_slug}")
    rng = rng or random.Random()
    reviews = (
        db.query(Review)
        .filter(Review.tenant_id == tenant.id, Review.reply_status == REPLY_NONE)
        .order_by(Review.review_created_at.desc())
        .limit(limit)
        .all()
    )
    drafted = []
    for review in reviews:
        if save:
            text = workflow.generate(
                review, db, generator=lambda _text, rating, business, _tone: mock_reply(rating, business, rng),
            )
        else:
            text = mock_reply(review.rating, tenant.business_name, rng)
        drafted.append({
            "review_id": review.id,
            "reviewer_name": review.reviewer_name,
            "rating": review.rating,
            "sentiment": review.sentiment or sentiment_for_rating(review.rating),
            "review_text": review.review_text,
            "reply": text,
        })
    return drafted


def sample_replies(business_name: str, rng: Optional[random.Random] = None) -> list[dict]:
    rng = rng or random.Random()
    return [
        {
            "review_id": None,
            "reviewer_name": name,
            "rating": rating,
            "sentiment": sentiment_for_rating(rating),
            "review_text": text,
            "reply": mock_reply(rating, business_name, rng),
        }
        for name, rating, text in SAMPLE_REVIEWS
    ]


def print_replies(items: list[dict]) -> None:
    print("=" * 70)
    print("  AI Reply Generation Demo (mock mode, no OpenAI calls)")
    print("=" * 70)
    for i, item in enumerate(items, 1):
        stars = "*" * item["rating"] + "-" * (5 - item["rating"])
        print(f"\nReview #{i}  [{stars}]  {item['sentiment']}")
        print(f"Reviewer: {item['reviewer_name']}")
        print(f'Review:   "{item["review_text"]}"')
        print(f'Reply:    "{item["reply"]}"')
        if item["review_id"] is not None:
            print(f"Save with: PUT /api/reviews/{item['review_id']}/reply")
    print(f"\n{len(items)} mock replies generated")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--sample", action="store_true", help="Use built-in sample reviews")
    source.add_argument("--tenant", help="Slug of a tenant whose unreplied reviews to use")
    parser.add_argument("--business-name", default="Demo Business Inc.", help="Business name for --sample")
    parser.add_argument("--limit", type=int, default=5, help="Max reviews to draft for (--tenant)")
    parser.add_argument("--save", action="store_true", help="Store replies as drafts (--tenant)")
    parser.add_argument("--seed", type=int, help="Random seed for template choice")
    args = parser.parse_args(argv)

    if args.limit < 1:
        parser.error("--limit must be at least 1")
    rng = random.Random(args.seed)

    if args.sample:
        items = sample_replies(args.business_name, rng)
    else:
        init_db()
        try:
            with session_scope() as db:
                items = draft_replies(db, args.tenant, args.limit, args.save, rng)
        except LookupError as e:
            parser.error(str(e))
    print_replies(items)
    return 0


if __name__ == "__main__":
    sys.exit(main())
