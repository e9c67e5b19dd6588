"""AI reply prompt and completion handling."""
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from reviewdesk.connectors import openai_replies
from reviewdesk.connectors.openai_replies import ReplyGenerationError


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_prompt_for_positive_review():
    prompt = openai_replies.build_prompt("Great!", 5, "Acme Cafe", {"style": "friendly", "keywords": "latte"})
    assert "for Acme Cafe" in prompt
    assert "Tone: friendly" in prompt
    assert "Include these keywords if natural: latte" in prompt
    assert "Express appreciation" in prompt
    assert "Apologize" not in prompt


def test_prompt_for_negative_review_uses_defaults():
    prompt = openai_replies.build_prompt("Awful", 1, "Acme Cafe", {})
    assert "Tone: professional" in prompt
    assert "Max Length: 200 characters" in prompt
    assert "Acknowledge their concerns" in prompt
    assert "Apologize for any inconvenience" in prompt
    assert "keywords" not in prompt


def test_generate_reply_calls_chat_completion():
    completions = FakeCompletions(content="  Thank you so much!  ")
    reply = openai_replies.generate_reply("Great!", 5, "Acme", {"style": "warm"}, client=fake_client(completions))
    assert reply == "Thank you so much!"
    assert completions.kwargs["temperature"] == 0.7
    assert completions.kwargs["max_tokens"] == 200
    assert completions.kwargs["messages"][0] == {"role": "system", "content": openai_replies.SYSTEM_PROMPT}
    assert "Tone: warm" in completions.kwargs["messages"][1]["content"]


def test_generate_reply_wraps_api_errors():
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    with pytest.raises(ReplyGenerationError):
        openai_replies.generate_reply("Hi", 3, client=fake_client(FakeCompletions(error=error)))


def test_empty_completion_is_an_error():
    with pytest.raises(ReplyGenerationError):
        openai_replies.generate_reply("Hi", 3, client=fake_client(FakeCompletions(content="   ")))
