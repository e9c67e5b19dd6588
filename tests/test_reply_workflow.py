"""Reply lifecycle: none -> drafted -> edited -> posted."""
import pytest

from reviewdesk.connectors import google_business
from reviewdesk.connectors.google_business import GoogleAPIError, QuotaExceededError
from reviewdesk.models import Tenant
from reviewdesk.models.review import REPLY_DRAFTED, REPLY_EDITED, REPLY_NONE, REPLY_POSTED
from reviewdesk.pipeline.credentials import GoogleConnectionError, QuotaCooldownError
from reviewdesk.pipeline.throttle import get_cooldowns
from reviewdesk.replies import workflow
from reviewdesk.replies.workflow import ReplyStateError

from conftest import make_review


def fixed(text):
    return lambda *args, **kwargs: text


def test_generate_drafts_reply(db, location, ai_reply):
    review = make_review(db, location, rating=4)
    text = workflow.generate(review, db)
    assert text == "Thanks for the 4-star review!"
    assert review.reply_status == REPLY_DRAFTED
    assert review.ai_generated_reply == review.edited_reply == review.final_reply == text
    assert review.ai_reply_generated_at is not None


def test_generate_passes_tenant_tone(db, tenant, location):
    tenant.settings = {"tone": {"style": "friendly", "keywords": "espresso"}}
    db.commit()
    review = make_review(db, location, rating=2, text="Cold coffee")
    seen = {}

    def generator(review_text, rating, business_name, tone):
        seen.update(text=review_text, rating=rating, business=business_name, tone=tone)
        return "Sorry about that"

    workflow.generate(review, db, generator=generator)
    assert seen["text"] == "Cold coffee"
    assert seen["rating"] == 2
    assert seen["business"] == "Acme Cafe"
    assert seen["tone"]["style"] == "friendly"
    assert seen["tone"]["max_length"] == 200


def test_generate_rejected_when_reply_exists(db, location):
    review = make_review(db, location)
    workflow.generate(review, db, generator=fixed("first"))
    with pytest.raises(ReplyStateError):
        workflow.generate(review, db, generator=fixed("second"))
    assert review.ai_generated_reply == "first"


def test_edit_moves_to_edited(db, location):
    review = make_review(db, location)
    workflow.generate(review, db, generator=fixed("draft"))
    workflow.edit(review, "  better reply  ", db)
    assert review.reply_status == REPLY_EDITED
    assert review.edited_reply == review.final_reply == "better reply"
    assert review.ai_generated_reply == "draft"


def test_edit_from_none_is_manual_reply(db, location):
    review = make_review(db, location)
    workflow.edit(review, "hand written", db)
    assert review.reply_status == REPLY_EDITED
    assert review.ai_generated_reply is None


def test_edit_requires_text(db, location):
    review = make_review(db, location)
    with pytest.raises(ReplyStateError):
        workflow.edit(review, "   ", db)
    assert review.reply_status == REPLY_NONE


def test_approve_posts_and_records(db, location, owner, posted_replies):
    review = make_review(db, location, google_review_id="g-1")
    workflow.generate(review, db, generator=fixed("draft"))
    workflow.edit(review, "final words", db)
    workflow.approve(review, db, approver=owner)

    assert posted_replies == [{
        "account_id": "accounts/100",
        "location_id": "locations/1",
        "review_id": "g-1",
        "comment": "final words",
    }]
    assert review.reply_status == REPLY_POSTED
    assert review.approval_status == "posted"
    assert review.posted_to_google is True
    assert review.has_reply is True
    assert review.approved_by_id == owner.id
    assert review.approved_at is not None and review.posted_at is not None
    assert review.google_reply_id.endswith("g-1/reply")


def test_approve_with_override_text(db, location, posted_replies):
    review = make_review(db, location)
    workflow.generate(review, db, generator=fixed("draft"))
    workflow.approve(review, db, edited_reply="override")
    assert review.final_reply == review.edited_reply == "override"
    assert posted_replies[0]["comment"] == "override"


def test_approve_without_any_text_is_rejected(db, location, posted_replies):
    review = make_review(db, location)
    with pytest.raises(ReplyStateError):
        workflow.approve(review, db)
    assert posted_replies == []


def test_posted_reply_is_immutable(db, location, posted_replies):
    review = make_review(db, location)
    workflow.approve(review, db, edited_reply="done")
    with pytest.raises(ReplyStateError):
        workflow.edit(review, "change", db)
    with pytest.raises(ReplyStateError):
        workflow.approve(review, db)
    with pytest.raises(ReplyStateError):
        workflow.generate(review, db, generator=fixed("again"))
    assert len(posted_replies) == 1


def test_approve_needs_connection(db, location):
    tenant = db.get(Tenant, location.tenant_id)
    tenant.clear_google_credentials()
    db.commit()
    review = make_review(db, location)
    workflow.generate(review, db, generator=fixed("draft"))
    with pytest.raises(GoogleConnectionError):
        workflow.approve(review, db)
    assert review.reply_status == REPLY_DRAFTED


def test_google_failure_leaves_review_unposted(db, location, monkeypatch):
    def boom(*args, **kwargs):
        raise GoogleAPIError("backend error", 500)

    monkeypatch.setattr(google_business, "post_reply", boom)
    review = make_review(db, location)
    workflow.generate(review, db, generator=fixed("draft"))
    with pytest.raises(GoogleAPIError):
        workflow.approve(review, db)
    db.refresh(review)
    assert review.reply_status == REPLY_DRAFTED
    assert review.posted_to_google is False


def test_quota_error_on_post_starts_cooldown(db, location, monkeypatch):
    def quota(*args, **kwargs):
        raise QuotaExceededError()

    monkeypatch.setattr(google_business, "post_reply", quota)
    review = make_review(db, location)
    workflow.generate(review, db, generator=fixed("draft"))
    with pytest.raises(QuotaCooldownError) as exc:
        workflow.approve(review, db)
    assert exc.value.retry_after > 0
    assert get_cooldowns().is_active(location.tenant_id)


@pytest.mark.parametrize("rating,rules,expected", [
    (5, {}, True),
    (4, {}, True),
    (3, {}, False),
    (1, {}, False),
    (3, {"neutral": True, "min_rating": 3}, True),
    (5, {"positive": False}, False),
    (2, {"negative": True, "min_rating": 1}, True),
    (1, {"negative": True, "min_rating": 0}, True),
    (3, {"neutral": True, "min_rating": 0}, True),
])
def test_should_auto_approve(db, tenant, rating, rules, expected):
    from reviewdesk.models.review import sentiment_for_rating

    tenant.settings = {"auto_approval": rules}
    assert workflow.should_auto_approve(tenant, rating, sentiment_for_rating(rating)) is expected
