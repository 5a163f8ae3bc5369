import re
from datetime import datetime, timezone

_MIX_RE = re.compile(r"mix", re.IGNORECASE)
_WORD_START_RE = re.compile(r"\b\w")

NO_FEEDBACK_SUMMARY = "You haven't taken the interview yet. Take it now to improve your skills."


def capitalize_each_word(text: str) -> str:
    return _WORD_START_RE.sub(lambda match: match.group(0).upper(), str(text or ""))


def normalize_interview_type(value: str) -> str:
    return "Mixed" if _MIX_RE.search(str(value or "")) else str(value or "")


def format_card_date(value: str | None) -> str:
    parsed = None
    if value:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            parsed = None
    if parsed is None:
        parsed = datetime.now(timezone.utc)
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def build_interview_card(interview: dict, feedback: dict | None = None) -> dict:
    interview_id = str(interview.get("id") or "")
    return {
        "id": interview_id,
        "user_id": interview.get("user_id"),
        "role": capitalize_each_word(interview.get("role") or ""),
        "type": normalize_interview_type(interview.get("type") or ""),
        "techstack": list(interview.get("techstack") or []),
        "date": format_card_date((feedback or {}).get("created_at") or interview.get("created_at")),
        "total_score": (feedback or {}).get("total_score"),
        "summary": (feedback or {}).get("final_assessment") or NO_FEEDBACK_SUMMARY,
        "has_feedback": feedback is not None,
        "href": f"/interview/{interview_id}/feedback" if feedback else f"/interview/{interview_id}",
    }
