"""
AI reply generation via the OpenAI chat completions API.

The system prompt fixes the role (customer service representative); the user
prompt carries the review, rating and the tenant's tone settings.
"""
import logging
from typing import Optional

from openai import OpenAI, OpenAIError

from reviewdesk.config import settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional customer service representative who writes thoughtful, "
    "personalized responses to customer reviews."
)


class ReplyGenerationError(Exception):
    """The LLM call failed or returned no usable text."""


def get_client() -> OpenAI:
    return OpenAI(api_key=settings.openai_api_key)


def build_prompt(review_text: str, rating: int, business_name: str, tone: dict) -> str:
    style = tone.get("style") or "professional"
    keywords = tone.get("keywords") or ""
    max_length = tone.get("max_length") or 200

    guidelines = [
        f"Tone: {style}",
        f"Max Length: {max_length} characters",
    ]
    if keywords:
        guidelines.append(f"Include these keywords if natural: {keywords}")
    guidelines.append("Thank the customer for their feedback")
    if rating >= 4:
        guidelines.append("Express appreciation for their positive experience")
    else:
        guidelines.append("Acknowledge their concerns and show empathy")
    if rating < 3:
        guidelines.append("Apologize for any inconvenience and offer to make things right")
    guidelines.append("Keep the response naturally flowing")
    guidelines.append("Do not use generic templates")

    bullet_list = "\n".join(f"- {g}" for g in guidelines)
    return (
        f"You are a professional customer service representative for {business_name}.\n"
        f"Generate a {style} and personalized response to the following customer review.\n\n"
        f"Review Rating: {rating}/5\n"
        f'Review Text: "{review_text}"\n\n'
        f"Guidelines:\n{bullet_list}\n\n"
        "Generate only the reply text, without any labels or prefixes."
    )


def generate_reply(
    review_text: str,
    rating: int,
    business_name: Optional[str] = None,
    tone: Optional[dict] = None,
    client: Optional[OpenAI] = None,
) -> str:
    """Return reply text for a review, or raise ReplyGenerationError."""
    client = client or get_client()
    prompt = build_prompt(review_text or "", rating, business_name or "our business", tone or {})
    try:
        completion = client.chat.completions.create(
            model=settings.openai_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.7,
            max_tokens=settings.openai_max_tokens,
        )
    except OpenAIError as exc:
        logger.error("OpenAI reply generation failed: %s", exc)
        raise ReplyGenerationError(
            "Failed to generate AI reply. Please check your OpenAI API key and quota."
        ) from exc

    content = completion.choices[0].message.content if completion.choices else None
    reply = (content or "").strip()
    if not reply:
        raise ReplyGenerationError("AI returned an empty reply")
    logger.info("Generated AI reply for %d-star review", rating)
    return reply
