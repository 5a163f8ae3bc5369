from __future__ import annotations

import time
from threading import Lock


class SessionRegistry:
    def __init__(self):
        self._lock = Lock()
        self._sessions: dict[str, dict] = {}
        self._call_index: dict[str, str] = {}

    def register(self, session_id: str, call_session, client, user_id: str) -> None:
        with self._lock:
            self._sessions[session_id] = {
                "call_session": call_session,
                "client": client,
                "user_id": user_id,
                "call_id": None,
                "created_at": time.time(),
                "updated_at": time.time(),
                "active": True,
            }

    def bind_call(self, session_id: str, call_id: str | None) -> None:
        if not call_id:
            return
        with self._lock:
            item = self._sessions.get(session_id)
            if item is None:
                return
            previous = item.get("call_id")
            if previous:
                self._call_index.pop(previous, None)
            item["call_id"] = call_id
            item["updated_at"] = time.time()
            self._call_index[call_id] = session_id

    def find_by_call_id(self, call_id: str | None) -> dict | None:
        if not call_id:
            return None
        with self._lock:
            session_id = self._call_index.get(call_id)
            item = self._sessions.get(session_id) if session_id else None
            return dict(item) if item else None

    def touch(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._sessions:
                self._sessions[session_id]["updated_at"] = time.time()

    def mark_inactive(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._sessions:
                self._sessions[session_id]["active"] = False
                self._sessions[session_id]["updated_at"] = time.time()

    def mark_active(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._sessions:
                self._sessions[session_id]["active"] = True
                self._sessions[session_id]["updated_at"] = time.time()

    def get(self, session_id: str) -> dict | None:
        with self._lock:
            item = self._sessions.get(session_id)
            return dict(item) if item else None

    def cleanup_inactive(self, ttl_sec: float, max_idle_sec: float | None = None) -> list[dict]:
        """
        Drop inactive sessions idle past ttl_sec. Sessions still flagged active
        are dropped too once idle past max_idle_sec (lost provider webhooks).
        """
        now_ts = time.time()
        cutoff = now_ts - max(30.0, float(ttl_sec or 900.0))
        active_cutoff = None
        if max_idle_sec is not None:
            active_cutoff = now_ts - max(float(ttl_sec or 900.0), float(max_idle_sec), 30.0)
        removed = []
        with self._lock:
            for session_id, data in list(self._sessions.items()):
                updated_at = float((data or {}).get("updated_at") or 0.0)
                if bool((data or {}).get("active", False)):
                    if active_cutoff is None or updated_at > active_cutoff:
                        continue
                elif updated_at > cutoff:
                    continue
                item = self._sessions.pop(session_id)
                call_id = item.get("call_id")
                if call_id:
                    self._call_index.pop(call_id, None)
                removed.append(item)
        return removed


session_registry = SessionRegistry()
