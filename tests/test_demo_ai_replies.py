"""Template replies used to demo reply drafting without OpenAI."""
import importlib.util
import random
from pathlib import Path

import pytest

from reviewdesk.models.review import REPLY_DRAFTED, REPLY_NONE

from conftest import make_review

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "demo_ai_replies.py"


@pytest.fixture(scope="module")
def demo():
    spec = importlib.util.spec_from_file_location("demo_ai_replies", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_reply_matches_rating(demo):
    rng = random.Random(1)
    for rating in range(1, 6):
        reply = demo.mock_reply(rating, "Acme Cafe", rng)
        assert "Acme Cafe" in reply
        assert reply in [t.format(business="Acme Cafe") for t in demo.TEMPLATES[rating]]


def test_unknown_rating_uses_neutral_wording(demo):
    reply = demo.mock_reply(0, "Acme Cafe", random.Random(0))
    assert reply in [t.format(business="Acme Cafe") for t in demo.TEMPLATES[3]]


def test_draft_replies_preview_leaves_reviews_alone(demo, db, location):
    make_review(db, location, rating=1, google_review_id="low", text="Cold food")
    make_review(db, location, rating=5, google_review_id="done", reply_status="drafted")
    items = demo.draft_replies(db, "acme", rng=random.Random(0))
    assert [i["rating"] for i in items] == [1]
    assert items[0]["sentiment"] == "Negative"
    assert "Acme Cafe" in items[0]["reply"]
    assert db.query(demo.Review).filter_by(google_review_id="low").one().reply_status == REPLY_NONE


def test_draft_replies_can_save_drafts(demo, db, location):
    review = make_review(db, location, rating=4, google_review_id="four")
    items = demo.draft_replies(db, "acme", save=True, rng=random.Random(0))
    db.refresh(review)
    assert review.reply_status == REPLY_DRAFTED
    assert review.final_reply == items[0]["reply"]
    assert review.ai_generated_reply == items[0]["reply"]


def test_unknown_tenant(demo, db):
    with pytest.raises(LookupError):
        demo.draft_replies(db, "nobody")


def test_cli_sample_mode(demo, capsys):
    assert demo.main(["--sample", "--business-name", "Bob's Bagels", "--seed", "3"]) == 0
    out = capsys.readouterr().out
    assert "5 mock replies generated" in out
    assert "Bob's Bagels" in out
    assert "Negative" in out


def test_cli_needs_a_source(demo):
    with pytest.raises(SystemExit):
        demo.main([])
