from prepme.call.events import CALL_EVENTS, CallClient, CallEventEmitter
from prepme.call.registry import SessionRegistry, session_registry
from prepme.call.session import MODE_GENERATE, MODE_INTERVIEW, InterviewCallSession
from prepme.call.vapi import VapiCallClient

__all__ = [
    "CALL_EVENTS",
    "CallClient",
    "CallEventEmitter",
    "InterviewCallSession",
    "MODE_GENERATE",
    "MODE_INTERVIEW",
    "SessionRegistry",
    "VapiCallClient",
    "session_registry",
]
