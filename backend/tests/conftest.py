import base64
import json
import os
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# prepme.feedback.llm constructs its client at import (during collection).
os.environ.setdefault("OPENAI_API_KEY", "test-key")


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("ALLOW_UNVERIFIED_JWT_DEV", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("SESSION_SECRET", "pytest-session-secret")
    for name in (
        "SUPABASE_JWT_SECRET",
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "SUPABASE_SERVICE_KEY",
        "SUPABASE_ANON_KEY",
    ):
        monkeypatch.delenv(name, raising=False)

    from core import config

    monkeypatch.setattr(config, "VAPI_WEBHOOK_SECRET", "")


@pytest.fixture
def store():
    from prepme.db.store import MemoryDocumentStore, set_document_store

    memory = MemoryDocumentStore()
    set_document_store(memory)
    yield memory
    set_document_store(None)


@pytest.fixture
def dev_jwt_token():
    def _make(sub: str = "pytest-user") -> str:
        def _enc(obj: dict) -> str:
            raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
            return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")

        header = _enc({"alg": "none", "typ": "JWT"})
        payload = _enc({"sub": sub, "iat": 0})
        return f"{header}.{payload}."

    return _make


def make_transcript(user_answers: int = 3, empty_user: int = 0) -> list[dict]:
    turns = [{"role": "system", "content": "Interview started"}]
    for index in range(user_answers):
        turns.append({"role": "assistant", "content": f"Question {index + 1}?"})
        turns.append({"role": "user", "content": f"Answer {index + 1}."})
    for _ in range(empty_user):
        turns.append({"role": "assistant", "content": "Anything else?"})
        turns.append({"role": "user", "content": "   "})
    return turns


@pytest.fixture
def transcript_factory():
    return make_transcript
