import pytest

from prepme.db import feedback_repo


def _seed(store):
    store.set("feedback", "f-u1", {"interview_id": "i1", "user_id": "u1", "total_score": 70})
    store.set("feedback", "f-u2", {"interview_id": "i2", "user_id": "u2", "total_score": 55})


@pytest.mark.asyncio
async def test_exact_pair_match_returns_that_document(store):
    _seed(store)
    feedback = await feedback_repo.get_feedback_by_interview_id("i1", "u1")
    assert feedback["id"] == "f-u1"


@pytest.mark.asyncio
async def test_fallback_by_interview_only_when_enabled(store):
    _seed(store)
    assert await feedback_repo.get_feedback_by_interview_id("i2", "u1", allow_interview_fallback=False) is None

    fallback = await feedback_repo.get_feedback_by_interview_id("i2", "u1", allow_interview_fallback=True)
    assert fallback["id"] == "f-u2"
    assert fallback["user_id"] == "u2"


@pytest.mark.asyncio
async def test_fallback_default_follows_config(store, monkeypatch: pytest.MonkeyPatch):
    from core import config

    _seed(store)
    monkeypatch.setattr(config, "FEEDBACK_FALLBACK_BY_INTERVIEW", False)
    assert await feedback_repo.get_feedback_by_interview_id("i2", "u1") is None

    monkeypatch.setattr(config, "FEEDBACK_FALLBACK_BY_INTERVIEW", True)
    assert (await feedback_repo.get_feedback_by_interview_id("i2", "u1"))["id"] == "f-u2"


@pytest.mark.asyncio
async def test_no_feedback_for_interview(store):
    _seed(store)
    assert await feedback_repo.get_feedback_by_interview_id("i9", "u1", allow_interview_fallback=True) is None
    assert await feedback_repo.get_feedback_by_interview_id("", "u1") is None


@pytest.mark.asyncio
async def test_save_feedback_creates_then_overwrites(store):
    new_id = await feedback_repo.save_feedback({"interview_id": "i1", "user_id": "u1", "total_score": 10})
    assert store.get("feedback", new_id)["total_score"] == 10

    same_id = await feedback_repo.save_feedback({"interview_id": "i1", "user_id": "u1", "total_score": 90}, feedback_id=new_id)
    assert same_id == new_id
    assert store.get("feedback", new_id)["total_score"] == 90
    assert store.count("feedback") == 1


@pytest.mark.asyncio
async def test_feedback_lookup_store_error_returns_none(store, monkeypatch: pytest.MonkeyPatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("store down")

    _seed(store)
    monkeypatch.setattr(store, "query", _boom)
    assert await feedback_repo.get_feedback_by_interview_id("i1", "u1") is None
    assert await feedback_repo.get_feedback_by_interview_id("i2", None, allow_interview_fallback=True) is None
