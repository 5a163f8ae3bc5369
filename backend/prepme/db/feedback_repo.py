import asyncio
import logging

from core import config
from prepme.db.store import get_document_store

logger = logging.getLogger("prepme.db.feedback_repo")

FEEDBACK = "feedback"


async def get_feedback_by_interview_id(
    interview_id: str | None,
    user_id: str | None,
    allow_interview_fallback: bool | None = None,
) -> dict | None:
    """
    Feedback for the (interview, user) pair. None on a miss or a store failure.
    """
    if not interview_id:
        return None

    if allow_interview_fallback is None:
        allow_interview_fallback = config.FEEDBACK_FALLBACK_BY_INTERVIEW

    store = get_document_store()
    try:
        if user_id:
            rows = await asyncio.to_thread(
                store.query,
                FEEDBACK,
                [("interview_id", "==", interview_id), ("user_id", "==", user_id)],
                None,
                1,
            )
            if rows:
                return rows[0]

        if not allow_interview_fallback:
            return None

        # Any user's feedback for this interview; can expose it to another viewer.
        rows = await asyncio.to_thread(
            store.query,
            FEEDBACK,
            [("interview_id", "==", interview_id)],
            None,
            1,
        )
    except Exception as exc:
        logger.error(
            "get_feedback_by_interview_id failed | interview_id=%s user_id=%s err=%s",
            interview_id,
            user_id,
            exc,
        )
        return None

    if rows:
        logger.warning(
            "feedback fallback by interview | interview_id=%s requested_user=%s owner=%s",
            interview_id,
            user_id,
            rows[0].get("user_id"),
        )
        return rows[0]
    return None


async def save_feedback(data: dict, feedback_id: str | None = None) -> str:
    """Overwrite the document when feedback_id is given, else create one."""
    store = get_document_store()
    doc_id = str(feedback_id) if feedback_id else store.new_id()
    await asyncio.to_thread(store.set, FEEDBACK, doc_id, data)
    return doc_id
