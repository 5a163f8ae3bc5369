import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from core import config
from core.logger import log_event
from core.state import LIVE_STATUSES, STARTABLE_STATUSES, CallStatus
from prepme.call import events
from prepme.call.events import CallClient
from prepme.call.interviewer import INTERVIEWER, format_questions
from prepme.feedback.generator import create_feedback

logger = logging.getLogger("prepme.call.session")

MODE_GENERATE = "generate"
MODE_INTERVIEW = "interview"
SESSION_MODES = (MODE_GENERATE, MODE_INTERVIEW)

FeedbackFn = Callable[..., Awaitable[dict]]


class InterviewCallSession:
    """
    Lifecycle of one voice-interview call.

    INACTIVE -> CONNECTING -> ACTIVE -> FINISHED, and FINISHED -> PROCESSING
    while feedback is generated for an existing interview. Provider events
    arrive through the client's listeners, which are held only between
    attach() and detach().
    """

    def __init__(
        self,
        session_id: str,
        client: CallClient,
        mode: str,
        user_name: str = "",
        user_id: str | None = None,
        interview_id: str | None = None,
        feedback_id: str | None = None,
        questions: list[str] | None = None,
        feedback_fn: FeedbackFn | None = None,
        workflow_id: str | None = None,
        interviewer: dict | None = None,
        redirect_delay_sec: float | None = None,
        on_close: Callable[["InterviewCallSession"], None] | None = None,
    ):
        if mode not in SESSION_MODES:
            raise ValueError(f"mode must be one of {SESSION_MODES}, got {mode!r}")
        if mode == MODE_INTERVIEW and not interview_id:
            raise ValueError("interview mode requires an interview_id")

        self.session_id = session_id
        self.client = client
        self.mode = mode
        self.user_name = user_name
        self.user_id = user_id
        self.interview_id = interview_id
        self.feedback_id = feedback_id
        self.questions = list(questions or [])
        self.workflow_id = workflow_id if workflow_id is not None else config.VAPI_WORKFLOW_ID
        self.interviewer = interviewer or INTERVIEWER
        self.redirect_delay_sec = (
            config.REDIRECT_DELAY_SEC if redirect_delay_sec is None else max(0.0, float(redirect_delay_sec))
        )
        self._feedback_fn = feedback_fn or create_feedback
        self._on_close = on_close

        self.status = CallStatus.INACTIVE
        self.messages: list[dict] = []
        self.is_speaking = False
        self.is_loading = False
        self.notifications: list[dict] = []
        self.redirect_to: str | None = None
        self.tasks: list[asyncio.Task] = []

        self._attached = False
        self._handlers = {
            events.CALL_START: self._on_call_start,
            events.CALL_END: self._on_call_end,
            events.MESSAGE: self._on_message,
            events.SPEECH_START: self._on_speech_start,
            events.SPEECH_END: self._on_speech_end,
            events.ERROR: self._on_error,
        }

    # -------------------------
    # LISTENER SCOPE
    # -------------------------

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        if self._attached:
            return
        for event, handler in self._handlers.items():
            self.client.on(event, handler)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        for event, handler in self._handlers.items():
            self.client.off(event, handler)
        self._attached = False

    def __enter__(self):
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.detach()
        return False

    # -------------------------
    # UI STATE
    # -------------------------

    @property
    def is_disabled(self) -> bool:
        return self.is_loading or self.status in {CallStatus.CONNECTING, CallStatus.PROCESSING}

    @property
    def can_start(self) -> bool:
        return self.status in STARTABLE_STATUSES and not self.is_disabled

    @property
    def last_messages(self) -> list[dict]:
        return [dict(item) for item in self.messages[-3:]]

    def _notify(self, level: str, title: str, description: str = "") -> None:
        self.notifications.append({
            "level": level,
            "title": title,
            "description": description,
            "at": time.time(),
        })
        log_event("call_session", "notification", self.session_id, level=level, title=title)

    def _set_status(self, status: CallStatus) -> None:
        previous = self.status
        if previous == status:
            return
        self.status = status
        log_event(
            "call_session",
            "status_changed",
            self.session_id,
            previous=previous.value,
            current=status.value,
            mode=self.mode,
        )
        if status == CallStatus.FINISHED:
            self.create_task(self._handle_finished())

    def _navigate(self, path: str) -> None:
        self.redirect_to = path
        log_event("call_session", "navigate", self.session_id, path=path)
        self.detach()
        if self._on_close is not None:
            self._on_close(self)

    # -------------------------
    # OPERATIONS
    # -------------------------

    async def start(self) -> bool:
        if not self.can_start:
            logger.info("start ignored | session_id=%s status=%s", self.session_id, self.status.value)
            return False

        self.attach()
        self.redirect_to = None
        self.messages = []
        self.is_speaking = False
        self._set_status(CallStatus.CONNECTING)
        self.is_loading = True
        self._notify("info", "Starting call", "Please wait while we connect...")

        try:
            if self.mode == MODE_GENERATE:
                await self.client.start(
                    self.workflow_id,
                    {"username": self.user_name, "userid": self.user_id},
                )
            else:
                await self.client.start(
                    self.interviewer,
                    {"questions": format_questions(self.questions)},
                )
        except Exception as exc:
            logger.error("Call start error | session_id=%s err=%s", self.session_id, exc)
            self._notify("error", "Call Start Failed", "Unable to start the call. Please try again.")
            self._set_status(CallStatus.INACTIVE)
            self.is_loading = False
            return False

        return True

    def end(self) -> bool:
        """Optimistic: FINISHED now, provider stop is fired and not awaited."""
        if self.status not in LIVE_STATUSES:
            logger.info("end ignored | session_id=%s status=%s", self.session_id, self.status.value)
            return False

        self._set_status(CallStatus.FINISHED)
        self.create_task(self._stop_client())
        self._notify("info", "Call Ended", "The call has been disconnected.")
        self.is_loading = False
        return True

    async def _stop_client(self) -> None:
        try:
            await self.client.stop()
        except Exception as exc:
            logger.warning("Disconnect error | session_id=%s err=%s", self.session_id, exc)
            self._notify("error", "Disconnect Failed", "Unable to end the call cleanly.")

    async def _handle_finished(self) -> None:
        if self.mode == MODE_GENERATE:
            self._navigate("/")
            return

        self._set_status(CallStatus.PROCESSING)
        self.is_loading = True
        self._notify("info", "Analyzing interview", "Please wait while we process your interview...")

        transcript = [dict(item) for item in self.messages]
        try:
            result = await self._feedback_fn(
                interview_id=self.interview_id,
                user_id=self.user_id,
                transcript=transcript,
                feedback_id=self.feedback_id,
            )
            if result.get("success") and result.get("feedback_id"):
                self.feedback_id = result["feedback_id"]
                self._notify("success", "Interview processed successfully!", "Redirecting to feedback...")
                self.create_task(self._redirect_later(f"/interview/{self.interview_id}/feedback"))
            else:
                self._notify(
                    "error",
                    "Error processing interview",
                    result.get("error") or "Please try again later",
                )
                self._navigate("/")
        except Exception as exc:
            logger.error("Feedback generation error | session_id=%s err=%s", self.session_id, exc)
            self._notify("error", "Unexpected error", "Failed to process interview")
            self._navigate("/")
        finally:
            self.is_loading = False

    async def _redirect_later(self, path: str) -> None:
        await asyncio.sleep(self.redirect_delay_sec)
        self._navigate(path)

    # -------------------------
    # PROVIDER EVENTS
    # -------------------------

    def _on_call_start(self) -> None:
        if self.status == CallStatus.CONNECTING:
            self._set_status(CallStatus.ACTIVE)
            self.is_loading = False

    def _on_call_end(self) -> None:
        if self.status in LIVE_STATUSES:
            self._set_status(CallStatus.FINISHED)
            self.is_loading = False

    def _on_message(self, message: dict) -> None:
        if not isinstance(message, dict):
            return
        if message.get("type") != "transcript" or message.get("transcriptType") != "final":
            return
        self.messages.append({
            "role": str(message.get("role") or ""),
            "content": str(message.get("transcript") or ""),
        })

    def _on_speech_start(self) -> None:
        self.is_speaking = True

    def _on_speech_end(self) -> None:
        self.is_speaking = False

    def _on_error(self, error: Any = None) -> None:
        logger.error("Call error | session_id=%s err=%s", self.session_id, error)
        self._notify("error", "Call Error", str(error or "The call reported an error."))
        if self.status in LIVE_STATUSES:
            self._set_status(CallStatus.INACTIVE)
            self.is_loading = False

    # -------------------------
    # TASKS
    # -------------------------

    def create_task(self, coro) -> asyncio.Task:
        self.tasks = [task for task in self.tasks if not task.done()]
        task = asyncio.create_task(coro)
        self.tasks.append(task)
        return task

    async def wait_idle(self) -> None:
        while True:
            pending = [task for task in self.tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        self.detach()
        current = asyncio.current_task()
        pending = [task for task in self.tasks if not task.done() and task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.tasks = []

    def snapshot(self) -> dict:
        return {
            "session_id": self.session_id,
            "mode": self.mode,
            "interview_id": self.interview_id,
            "status": self.status.value,
            "is_speaking": self.is_speaking,
            "is_loading": self.is_loading,
            "is_disabled": self.is_disabled,
            "can_start": self.can_start,
            "message_count": len(self.messages),
            "last_messages": self.last_messages,
            "notifications": list(self.notifications),
            "redirect_to": self.redirect_to,
            "feedback_id": self.feedback_id,
        }
