from fastapi import FastAPI, HTTPException, Request, Response, Depends
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import logging
import os

from prepme.api.calls import router as calls_router
from prepme.auth import get_current_user, require_user, sign_in, sign_out, sign_up
from prepme.call.registry import session_registry
from prepme.dashboard.cards import build_interview_card
from prepme.db.feedback_repo import get_feedback_by_interview_id
from prepme.db.interview_repo import get_interview_by_id, get_interviews_by_user_id, get_latest_interviews
from prepme.feedback.generator import create_feedback
from prepme.schemas import (
    AuthResponse,
    CreateFeedbackRequest,
    CreateFeedbackResponse,
    SignInRequest,
    SignUpRequest,
)

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

app = FastAPI(title="Prepme API")
logger = logging.getLogger("prepme.main")


def _get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]


_allowed_origins = _get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    # the session cookie must travel with cross-origin requests
    allow_credentials=True,
)

app.include_router(calls_router)

SESSION_CLEANUP_TTL_SEC = max(60, int(os.getenv("SESSION_CLEANUP_TTL_SEC", "1800")))
SESSION_CLEANUP_INTERVAL_SEC = max(30, int(os.getenv("SESSION_CLEANUP_INTERVAL_SEC", "120")))
SESSION_MAX_IDLE_SEC = max(300, int(os.getenv("SESSION_MAX_IDLE_SEC", "14400")))
_session_cleanup_task: asyncio.Task | None = None


async def _cleanup_sessions(ttl_sec: float, max_idle_sec: float | None = None) -> int:
    removed = session_registry.cleanup_inactive(ttl_sec, max_idle_sec=max_idle_sec)
    for item in removed:
        call_session = item.get("call_session")
        if call_session is not None:
            await call_session.close()
    return len(removed)


@app.on_event("startup")
async def startup_banner():
    global _session_cleanup_task
    logger.info("[SYSTEM] CORS allow_origins=%s", _allowed_origins)

    async def _session_cleanup_loop():
        while True:
            await asyncio.sleep(SESSION_CLEANUP_INTERVAL_SEC)
            removed = await _cleanup_sessions(SESSION_CLEANUP_TTL_SEC, SESSION_MAX_IDLE_SEC)
            if removed > 0:
                logger.info("[SYSTEM] cleaned inactive sessions=%s", removed)

    _session_cleanup_task = asyncio.create_task(_session_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_handler():
    global _session_cleanup_task
    if _session_cleanup_task is not None:
        _session_cleanup_task.cancel()
        try:
            await _session_cleanup_task
        except asyncio.CancelledError:
            pass
        finally:
            _session_cleanup_task = None
    logger.info("[SYSTEM] shutdown complete")


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "prepme"}


@app.post("/api/auth/sign-up", response_model=AuthResponse)
async def sign_up_route(req: SignUpRequest):
    return await sign_up(req.uid, req.name, req.email)


@app.post("/api/auth/sign-in", response_model=AuthResponse)
async def sign_in_route(req: SignInRequest, response: Response):
    return await sign_in(req.email, req.id_token, response)


@app.post("/api/auth/sign-out", response_model=AuthResponse)
def sign_out_route(response: Response):
    return sign_out(response)


@app.get("/api/auth/me")
async def me(request: Request):
    user = await get_current_user(request)
    return {"authenticated": user is not None, "user": user}


@app.get("/api/dashboard")
async def dashboard(user: dict = Depends(require_user), limit: int = 20):
    capped = max(1, min(int(limit or 20), 100))
    user_interviews, latest_interviews = await asyncio.gather(
        get_interviews_by_user_id(user["id"]),
        get_latest_interviews(user["id"], limit=capped),
    )

    async def _cards(interviews: list[dict] | None) -> list[dict]:
        cards = []
        for interview in interviews or []:
            feedback = await get_feedback_by_interview_id(
                interview["id"], user["id"], allow_interview_fallback=False
            )
            cards.append(build_interview_card(interview, feedback))
        return cards

    return {
        "user": {"id": user["id"], "name": user.get("name")},
        "user_interviews": await _cards(user_interviews),
        "latest_interviews": await _cards(latest_interviews),
        "has_past_interviews": bool(user_interviews),
        "has_upcoming_interviews": bool(latest_interviews),
    }


@app.get("/api/interviews/{interview_id}")
async def interview_detail(interview_id: str, user: dict = Depends(require_user)):
    interview = await get_interview_by_id(interview_id)
    if not interview:
        raise HTTPException(status_code=404, detail="Interview not found")

    feedback = await get_feedback_by_interview_id(interview_id, user["id"])
    return {
        "interview": interview,
        "feedback": {
            "id": feedback["id"],
            "created_at": feedback.get("created_at"),
            "href": f"/interview/{interview_id}/feedback",
        } if feedback else None,
    }


@app.get("/api/interviews/{interview_id}/feedback")
async def interview_feedback(interview_id: str, user: dict = Depends(require_user)):
    interview = await get_interview_by_id(interview_id)
    if not interview:
        raise HTTPException(status_code=404, detail="Interview not found")

    feedback = await get_feedback_by_interview_id(interview_id, user["id"])
    return {"interview": interview, "feedback": feedback}


@app.post("/api/feedback", response_model=CreateFeedbackResponse)
async def create_feedback_route(req: CreateFeedbackRequest, user: dict = Depends(require_user)):
    return await create_feedback(
        interview_id=req.interview_id,
        user_id=user["id"],
        transcript=req.transcript,
        feedback_id=req.feedback_id,
    )
