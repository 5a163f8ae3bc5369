import logging
import secrets
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request

from core import config
from prepme.auth import require_user
from prepme.call.registry import session_registry
from prepme.call.session import MODE_INTERVIEW, InterviewCallSession
from prepme.call.vapi import VapiCallClient
from prepme.db.feedback_repo import get_feedback_by_interview_id
from prepme.db.interview_repo import get_interview_by_id
from prepme.schemas import StartCallRequest

logger = logging.getLogger("prepme.api.calls")

router = APIRouter()


def build_call_client() -> VapiCallClient:
    return VapiCallClient()


def _owned_session(session_id: str, user: dict) -> dict:
    item = session_registry.get(session_id)
    if not item:
        raise HTTPException(status_code=404, detail="Session not found")
    if item.get("user_id") != user["id"]:
        raise HTTPException(status_code=403, detail="Forbidden")
    return item


def _snapshot(item: dict, client) -> dict:
    payload = item["call_session"].snapshot()
    payload["web_call_url"] = getattr(client, "web_call_url", None)
    payload["active"] = bool(item.get("active", False))
    return payload


@router.post("/api/calls")
async def create_call(req: StartCallRequest, user: dict = Depends(require_user)):
    questions: list[str] = []
    feedback_id = None
    if req.type == MODE_INTERVIEW:
        interview = await get_interview_by_id(req.interview_id)
        if not interview:
            raise HTTPException(status_code=404, detail="Interview not found")
        questions = list(interview.get("questions") or [])
        feedback = await get_feedback_by_interview_id(req.interview_id, user["id"], allow_interview_fallback=False)
        feedback_id = (feedback or {}).get("id")

    session_id = str(uuid.uuid4())
    client = build_call_client()
    call_session = InterviewCallSession(
        session_id=session_id,
        client=client,
        mode=req.type,
        user_name=str(user.get("name") or ""),
        user_id=user["id"],
        interview_id=req.interview_id,
        feedback_id=feedback_id,
        questions=questions,
        on_close=lambda closed: session_registry.mark_inactive(closed.session_id),
    )
    session_registry.register(session_id, call_session=call_session, client=client, user_id=user["id"])

    if await call_session.start():
        session_registry.bind_call(session_id, getattr(client, "call_id", None))
    else:
        session_registry.mark_inactive(session_id)
    return _snapshot(session_registry.get(session_id), client)


@router.get("/api/calls/{session_id}")
async def get_call(session_id: str, user: dict = Depends(require_user)):
    item = _owned_session(session_id, user)
    return _snapshot(item, item["client"])


@router.post("/api/calls/{session_id}/start")
async def restart_call(session_id: str, user: dict = Depends(require_user)):
    item = _owned_session(session_id, user)
    call_session = item["call_session"]
    started = await call_session.start()
    if started:
        session_registry.bind_call(session_id, getattr(item["client"], "call_id", None))
        session_registry.mark_active(session_id)
    else:
        session_registry.touch(session_id)
    payload = _snapshot(session_registry.get(session_id), item["client"])
    payload["started"] = started
    return payload


@router.post("/api/calls/{session_id}/end")
async def end_call(session_id: str, user: dict = Depends(require_user)):
    item = _owned_session(session_id, user)
    ended = item["call_session"].end()
    session_registry.touch(session_id)
    payload = _snapshot(item, item["client"])
    payload["ended"] = ended
    return payload


@router.post("/api/vapi/events")
async def vapi_events(payload: dict, request: Request):
    expected = config.VAPI_WEBHOOK_SECRET
    if expected:
        provided = str(request.headers.get("x-vapi-secret") or "")
        if not secrets.compare_digest(provided, expected):
            raise HTTPException(status_code=401, detail="Invalid webhook secret")

    message = payload.get("message") if isinstance(payload.get("message"), dict) else {}
    call_id = str((message.get("call") or {}).get("id") or "")
    item = session_registry.find_by_call_id(call_id)
    if not item:
        logger.info("vapi event for unknown call | call_id=%s type=%s", call_id, message.get("type"))
        return {"received": True, "routed": False}

    await item["client"].dispatch(message)
    session_registry.touch(str(item["call_session"].session_id))
    return {"received": True, "routed": True}
