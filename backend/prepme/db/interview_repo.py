import asyncio
import logging

from prepme.db.store import get_document_store

logger = logging.getLogger("prepme.db.interview_repo")

INTERVIEWS = "interviews"


async def get_interviews_by_user_id(user_id: str | None) -> list[dict] | None:
    """
    Interviews created by the user, newest first.
    None means missing input or a store failure; [] means the user has none.
    """
    if not user_id:
        logger.warning("No user ID provided for interview query")
        return None

    store = get_document_store()
    try:
        return await asyncio.to_thread(
            store.query,
            INTERVIEWS,
            [("user_id", "==", user_id)],
            ("created_at", "desc"),
        )
    except Exception as exc:
        logger.error("get_interviews_by_user_id failed | user_id=%s err=%s", user_id, exc)
        return None


async def get_latest_interviews(user_id: str | None, limit: int = 20) -> list[dict] | None:
    """Finalized interviews owned by other users, newest first."""
    if not user_id:
        logger.warning("No user ID provided for latest interviews query")
        return None

    store = get_document_store()
    try:
        return await asyncio.to_thread(
            store.query,
            INTERVIEWS,
            [("finalized", "==", True), ("user_id", "!=", user_id)],
            ("created_at", "desc"),
            max(0, int(limit)),
        )
    except Exception as exc:
        logger.error("get_latest_interviews failed | user_id=%s err=%s", user_id, exc)
        return None


async def get_interview_by_id(interview_id: str | None) -> dict | None:
    if not interview_id:
        return None
    store = get_document_store()
    try:
        return await asyncio.to_thread(store.get, INTERVIEWS, interview_id)
    except Exception as exc:
        logger.error("get_interview_by_id failed | interview_id=%s err=%s", interview_id, exc)
        return None
