import asyncio

import pytest

from core.state import CallStatus
from prepme.call import events
from prepme.call.events import CALL_EVENTS, CallEventEmitter
from prepme.call.interviewer import INTERVIEWER
from prepme.call.session import InterviewCallSession


class FakeCallClient:
    def __init__(self, fail_start: bool = False, fail_stop: bool = False):
        self.emitter = CallEventEmitter()
        self.started = []
        self.stopped = 0
        self.fail_start = fail_start
        self.fail_stop = fail_stop

    def on(self, event, handler):
        self.emitter.on(event, handler)

    def off(self, event, handler):
        self.emitter.off(event, handler)

    async def start(self, target, variable_values):
        self.started.append((target, variable_values))
        if self.fail_start:
            raise RuntimeError("no microphone")

    async def stop(self):
        self.stopped += 1
        if self.fail_stop:
            raise RuntimeError("already gone")

    async def emit(self, event, *args):
        await self.emitter.emit(event, *args)

    async def say(self, role: str, text: str, final: bool = True):
        await self.emit(events.MESSAGE, {
            "type": "transcript",
            "transcriptType": "final" if final else "partial",
            "role": role,
            "transcript": text,
        })


class RecordingFeedback:
    def __init__(self, result: dict | None = None, error: Exception | None = None):
        self.calls = []
        self.result = result if result is not None else {"success": True, "feedback_id": "fb-1"}
        self.error = error

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _interview_session(client, feedback_fn=None, redirect_delay_sec=0, **kwargs):
    closed = []
    session = InterviewCallSession(
        session_id="s-1",
        client=client,
        mode="interview",
        user_name="Ada",
        user_id="u1",
        interview_id="i1",
        questions=["What is a closure?", "Explain REST."],
        feedback_fn=feedback_fn or RecordingFeedback(),
        redirect_delay_sec=redirect_delay_sec,
        on_close=closed.append,
        **kwargs,
    )
    return session, closed


@pytest.mark.asyncio
async def test_start_moves_through_connecting_to_active():
    client = FakeCallClient()
    session, _ = _interview_session(client)

    assert await session.start() is True
    assert session.status == CallStatus.CONNECTING
    assert session.is_disabled is True

    target, variables = client.started[0]
    assert target is INTERVIEWER
    assert variables == {"questions": "- What is a closure?\n- Explain REST."}

    await client.emit(events.CALL_START)
    assert session.status == CallStatus.ACTIVE
    assert session.is_loading is False


@pytest.mark.asyncio
async def test_generate_mode_starts_workflow_with_user_variables():
    client = FakeCallClient()
    session = InterviewCallSession(
        session_id="s-gen",
        client=client,
        mode="generate",
        user_name="Ada",
        user_id="u1",
        workflow_id="wf-123",
        redirect_delay_sec=0,
    )

    await session.start()
    assert client.started == [("wf-123", {"username": "Ada", "userid": "u1"})]


@pytest.mark.asyncio
async def test_start_while_active_is_a_no_op():
    client = FakeCallClient()
    session, _ = _interview_session(client)
    await session.start()
    await client.emit(events.CALL_START)

    assert await session.start() is False
    assert session.status == CallStatus.ACTIVE
    assert len(client.started) == 1


@pytest.mark.asyncio
async def test_start_failure_reverts_to_inactive():
    client = FakeCallClient(fail_start=True)
    session, _ = _interview_session(client)

    assert await session.start() is False
    assert session.status == CallStatus.INACTIVE
    assert session.is_loading is False
    assert session.notifications[-1]["title"] == "Call Start Failed"
    assert session.can_start is True


@pytest.mark.asyncio
async def test_error_event_reverts_to_inactive():
    client = FakeCallClient()
    session, _ = _interview_session(client)
    await session.start()
    await client.emit(events.CALL_START)

    await client.emit(events.ERROR, RuntimeError("pipeline-error"))

    assert session.status == CallStatus.INACTIVE
    assert session.notifications[-1]["level"] == "error"


@pytest.mark.asyncio
async def test_only_final_transcripts_are_kept():
    client = FakeCallClient()
    session, _ = _interview_session(client)
    await session.start()
    await client.emit(events.CALL_START)

    await client.say("assistant", "Tell me", final=False)
    await client.say("assistant", "Tell me about yourself.")
    await client.emit(events.MESSAGE, {"type": "status-update"})

    assert session.messages == [{"role": "assistant", "content": "Tell me about yourself."}]


@pytest.mark.asyncio
async def test_last_messages_holds_three_most_recent():
    client = FakeCallClient()
    session, _ = _interview_session(client)
    await session.start()
    for index in range(5):
        await client.say("user", f"line {index}")

    assert [item["content"] for item in session.last_messages] == ["line 2", "line 3", "line 4"]


@pytest.mark.asyncio
async def test_speech_events_toggle_speaking():
    client = FakeCallClient()
    session, _ = _interview_session(client)
    await session.start()

    await client.emit(events.SPEECH_START)
    assert session.is_speaking is True
    await client.emit(events.SPEECH_END)
    assert session.is_speaking is False


@pytest.mark.asyncio
async def test_end_is_optimistic_and_fires_stop():
    client = FakeCallClient(fail_stop=True)
    feedback = RecordingFeedback(result={"success": False})
    session, _ = _interview_session(client, feedback_fn=feedback)
    await session.start()
    await client.emit(events.CALL_START)

    assert session.end() is True
    assert session.status == CallStatus.FINISHED

    await session.wait_idle()
    assert client.stopped == 1
    assert any(item["title"] == "Disconnect Failed" for item in session.notifications)


@pytest.mark.asyncio
async def test_end_from_inactive_is_ignored():
    client = FakeCallClient()
    session, _ = _interview_session(client)

    assert session.end() is False
    assert session.status == CallStatus.INACTIVE
    assert client.stopped == 0


@pytest.mark.asyncio
async def test_end_to_end_feedback_gets_transcript_in_order():
    client = FakeCallClient()
    feedback = RecordingFeedback()
    session, closed = _interview_session(client, feedback_fn=feedback, feedback_id="existing-fb")

    await session.start()
    await client.emit(events.CALL_START)
    await client.say("assistant", "Q1")
    await client.say("user", "A1")
    await client.say("user", "A1 draft", final=False)
    await client.say("assistant", "Q2")
    await client.say("user", "A2")
    await client.say("assistant", "Q3")
    await client.say("user", "A3")

    session.end()
    await client.emit(events.CALL_END)
    await session.wait_idle()

    assert len(feedback.calls) == 1
    call = feedback.calls[0]
    assert call["interview_id"] == "i1"
    assert call["user_id"] == "u1"
    assert call["feedback_id"] == "existing-fb"
    assert call["transcript"] == [
        {"role": "assistant", "content": "Q1"},
        {"role": "user", "content": "A1"},
        {"role": "assistant", "content": "Q2"},
        {"role": "user", "content": "A2"},
        {"role": "assistant", "content": "Q3"},
        {"role": "user", "content": "A3"},
    ]
    assert session.status == CallStatus.PROCESSING
    assert session.redirect_to == "/interview/i1/feedback"
    assert session.feedback_id == "fb-1"
    assert session.is_loading is False
    assert closed == [session]
    assert client.emitter.listener_count() == 0


@pytest.mark.asyncio
async def test_call_end_event_alone_triggers_feedback_once():
    client = FakeCallClient()
    feedback = RecordingFeedback()
    session, _ = _interview_session(client, feedback_fn=feedback)
    await session.start()
    await client.emit(events.CALL_START)

    await client.emit(events.CALL_END)
    await client.emit(events.CALL_END)
    await session.wait_idle()

    assert len(feedback.calls) == 1
    assert client.stopped == 0


@pytest.mark.asyncio
async def test_unsuccessful_feedback_redirects_home():
    client = FakeCallClient()
    feedback = RecordingFeedback(result={"success": False, "error": "Not enough conversation to generate feedback"})
    session, closed = _interview_session(client, feedback_fn=feedback)
    await session.start()
    await client.emit(events.CALL_START)

    session.end()
    await session.wait_idle()

    assert session.redirect_to == "/"
    assert session.notifications[-1]["description"] == "Not enough conversation to generate feedback"
    assert closed == [session]


@pytest.mark.asyncio
async def test_feedback_exception_redirects_home():
    client = FakeCallClient()
    feedback = RecordingFeedback(error=RuntimeError("boom"))
    session, _ = _interview_session(client, feedback_fn=feedback)
    await session.start()
    await client.emit(events.CALL_START)

    session.end()
    await session.wait_idle()

    assert session.redirect_to == "/"
    assert any(item["title"] == "Unexpected error" for item in session.notifications)
    assert session.is_loading is False


@pytest.mark.asyncio
async def test_generate_mode_navigates_home_without_feedback():
    client = FakeCallClient()
    feedback = RecordingFeedback()
    session = InterviewCallSession(
        session_id="s-gen",
        client=client,
        mode="generate",
        user_id="u1",
        workflow_id="wf-1",
        feedback_fn=feedback,
        redirect_delay_sec=0,
    )
    await session.start()
    await client.emit(events.CALL_START)
    await client.say("user", "I want a frontend interview")

    session.end()
    await session.wait_idle()

    assert feedback.calls == []
    assert session.redirect_to == "/"
    assert session.status == CallStatus.FINISHED
    assert session.can_start is True


@pytest.mark.asyncio
async def test_listeners_attach_once_and_release_symmetrically():
    client = FakeCallClient()
    session, _ = _interview_session(client)

    session.attach()
    session.attach()
    for event in CALL_EVENTS:
        assert client.emitter.listener_count(event) == 1

    session.detach()
    assert client.emitter.listener_count() == 0

    with session:
        assert client.emitter.listener_count() == len(CALL_EVENTS)
    assert client.emitter.listener_count() == 0


@pytest.mark.asyncio
async def test_restart_after_generate_reattaches_without_duplicates():
    client = FakeCallClient()
    session = InterviewCallSession(
        session_id="s-gen",
        client=client,
        mode="generate",
        workflow_id="wf-1",
        redirect_delay_sec=0,
    )
    await session.start()
    await client.emit(events.CALL_START)
    session.end()
    await session.wait_idle()
    assert client.emitter.listener_count() == 0

    assert await session.start() is True
    assert session.redirect_to is None
    assert client.emitter.listener_count() == len(CALL_EVENTS)


@pytest.mark.asyncio
async def test_close_cancels_pending_redirect():
    client = FakeCallClient()
    session, closed = _interview_session(client, redirect_delay_sec=60)
    await session.start()
    await client.emit(events.CALL_START)
    session.end()

    for _ in range(100):
        if session.feedback_id == "fb-1":
            break
        await asyncio.sleep(0)
    assert session.feedback_id == "fb-1"
    await session.close()

    assert session.redirect_to is None
    assert closed == []
    assert client.emitter.listener_count() == 0


def test_interview_mode_requires_interview_id():
    with pytest.raises(ValueError):
        InterviewCallSession(session_id="s", client=FakeCallClient(), mode="interview")
    with pytest.raises(ValueError):
        InterviewCallSession(session_id="s", client=FakeCallClient(), mode="unknown")


@pytest.mark.asyncio
async def test_late_call_start_keeps_processing_loading():
    gate = asyncio.Event()

    async def _slow_feedback(**kwargs):
        await gate.wait()
        return {"success": True, "feedback_id": "fb-1"}

    client = FakeCallClient()
    session, _ = _interview_session(client, feedback_fn=_slow_feedback)
    await session.start()
    await client.emit(events.CALL_START)
    await client.emit(events.CALL_END)
    for _ in range(50):
        if session.status == CallStatus.PROCESSING:
            break
        await asyncio.sleep(0)

    await client.emit(events.CALL_START)
    assert session.status == CallStatus.PROCESSING
    assert session.is_loading is True

    gate.set()
    await session.wait_idle()
    assert session.is_loading is False
