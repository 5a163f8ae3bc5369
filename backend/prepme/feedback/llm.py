import asyncio
import logging

from openai import AsyncOpenAI

from core.config import FEEDBACK_MODEL, FEEDBACK_TIMEOUT_SEC, OPENAI_API_KEY
from prepme.feedback.models import FeedbackAssessment

logger = logging.getLogger("prepme.feedback.llm")

client = AsyncOpenAI(api_key=OPENAI_API_KEY)


def _response_format() -> dict:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "interview_feedback",
            "schema": FeedbackAssessment.model_json_schema(),
        },
    }


async def generate_assessment(prompt: str, system: str, timeout_sec: float = FEEDBACK_TIMEOUT_SEC) -> FeedbackAssessment:
    """
    One structured-generation call. No retries: a timeout, provider error or
    schema violation propagates to the caller.
    """
    response = await asyncio.wait_for(
        client.chat.completions.create(
            model=FEEDBACK_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            response_format=_response_format(),
            temperature=0.2,
        ),
        timeout=timeout_sec,
    )
    content = str(response.choices[0].message.content or "").strip()
    if not content:
        raise ValueError("empty feedback response from model")
    return FeedbackAssessment.model_validate_json(content)
