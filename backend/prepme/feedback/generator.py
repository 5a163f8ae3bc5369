import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from core.logger import log_event
from prepme.db.feedback_repo import save_feedback
from prepme.feedback import llm
from prepme.feedback.models import FeedbackAssessment
from prepme.feedback.prompts import FEEDBACK_SYSTEM_PROMPT, build_feedback_prompt

logger = logging.getLogger("prepme.feedback.generator")

MIN_TRANSCRIPT_TURNS = 4
MIN_USER_TURNS = 3

AssessFn = Callable[[str, str], Awaitable[FeedbackAssessment]]


def _normalize_transcript(transcript: list[Any] | None) -> list[dict]:
    turns = []
    for turn in transcript or []:
        if hasattr(turn, "model_dump"):
            turn = turn.model_dump()
        turns.append({
            "role": str((turn or {}).get("role") or ""),
            "content": str((turn or {}).get("content") or ""),
        })
    return turns


def check_transcript(transcript: list[dict]) -> str | None:
    if len(transcript) < MIN_TRANSCRIPT_TURNS:
        return "Not enough conversation to generate feedback"
    user_turns = sum(1 for turn in transcript if turn["role"] == "user" and turn["content"].strip())
    if user_turns < MIN_USER_TURNS:
        return "Not enough candidate answers to generate feedback"
    return None


async def create_feedback(
    interview_id: str,
    user_id: str,
    transcript: list[Any],
    feedback_id: str | None = None,
    assess_fn: AssessFn | None = None,
) -> dict:
    turns = _normalize_transcript(transcript)
    rejection = check_transcript(turns)
    if rejection:
        log_event(
            "feedback",
            "transcript_rejected",
            interview_id,
            user_id=user_id,
            turns=len(turns),
            reason=rejection,
        )
        return {"success": False, "error": rejection}

    assess = assess_fn or llm.generate_assessment
    try:
        assessment = await assess(build_feedback_prompt(turns), FEEDBACK_SYSTEM_PROMPT)

        feedback = {
            "interview_id": interview_id,
            "user_id": user_id,
            "total_score": assessment.total_score,
            "category_scores": [item.model_dump() for item in assessment.category_scores],
            "strengths": list(assessment.strengths),
            "areas_for_improvement": list(assessment.areas_for_improvement),
            "final_assessment": assessment.final_assessment,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        saved_id = await save_feedback(feedback, feedback_id=feedback_id)
    except Exception as exc:
        logger.error("Error saving feedback | interview_id=%s err=%s", interview_id, exc)
        return {"success": False, "error": "Failed to generate feedback"}

    log_event(
        "feedback",
        "feedback_saved",
        interview_id,
        user_id=user_id,
        feedback_id=saved_id,
        overwrite=bool(feedback_id),
        total_score=assessment.total_score,
    )
    return {"success": True, "feedback_id": saved_id}
