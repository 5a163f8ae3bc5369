from typing import Literal

from pydantic import BaseModel

from prepme.feedback.models import TranscriptMessage


class SignUpRequest(BaseModel):
    uid: str
    name: str
    email: str


class SignInRequest(BaseModel):
    email: str
    id_token: str


class AuthResponse(BaseModel):
    success: bool
    message: str


class CreateFeedbackRequest(BaseModel):
    interview_id: str
    transcript: list[TranscriptMessage]
    feedback_id: str | None = None


class CreateFeedbackResponse(BaseModel):
    success: bool
    feedback_id: str | None = None
    error: str | None = None


class StartCallRequest(BaseModel):
    type: Literal["generate", "interview"]
    interview_id: str | None = None
