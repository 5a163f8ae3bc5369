import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)


def env_flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}


OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
FEEDBACK_MODEL = str(os.getenv("FEEDBACK_MODEL") or "gpt-4o-mini").strip()
FEEDBACK_TIMEOUT_SEC = max(5.0, float(os.getenv("FEEDBACK_TIMEOUT_SEC", "90")))
FEEDBACK_FALLBACK_BY_INTERVIEW = env_flag("FEEDBACK_FALLBACK_BY_INTERVIEW")

DOCUMENT_STORE = str(os.getenv("DOCUMENT_STORE") or "memory").strip().lower()
DOCUMENT_STORE_PATH = str(os.getenv("DOCUMENT_STORE_PATH") or "").strip()
MONGO_URI = str(os.getenv("MONGO_URI") or "mongodb://localhost:27017").strip()
MONGO_DB = str(os.getenv("MONGO_DB") or "prepme").strip()

VAPI_API_KEY = str(os.getenv("VAPI_API_KEY") or "").strip()
VAPI_BASE_URL = str(os.getenv("VAPI_BASE_URL") or "https://api.vapi.ai").strip()
VAPI_WORKFLOW_ID = str(os.getenv("VAPI_WORKFLOW_ID") or "").strip()
VAPI_WEBHOOK_SECRET = str(os.getenv("VAPI_WEBHOOK_SECRET") or "").strip()

REDIRECT_DELAY_SEC = max(0.0, float(os.getenv("REDIRECT_DELAY_SEC", "2.0")))
SESSION_MAX_AGE_SEC = 60 * 60 * 24 * 7
SESSION_COOKIE_NAME = "session"
