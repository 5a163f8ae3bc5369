from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Protocol

logger = logging.getLogger("prepme.call.events")

CALL_START = "call-start"
CALL_END = "call-end"
MESSAGE = "message"
SPEECH_START = "speech-start"
SPEECH_END = "speech-end"
ERROR = "error"

CALL_EVENTS = (CALL_START, CALL_END, MESSAGE, SPEECH_START, SPEECH_END, ERROR)

CallEventHandler = Callable[..., Awaitable[None] | None]


class CallClient(Protocol):
    async def start(self, target: str | dict, variable_values: dict) -> None:
        ...

    async def stop(self) -> None:
        ...

    def on(self, event: str, handler: CallEventHandler) -> None:
        ...

    def off(self, event: str, handler: CallEventHandler) -> None:
        ...


class CallEventEmitter:
    def __init__(self):
        self._handlers: dict[str, list[CallEventHandler]] = defaultdict(list)

    @staticmethod
    def _check(event: str) -> None:
        if event not in CALL_EVENTS:
            raise ValueError(f"Unknown call event {event!r}")

    def on(self, event: str, handler: CallEventHandler) -> None:
        self._check(event)
        self._handlers[event].append(handler)

    def off(self, event: str, handler: CallEventHandler) -> None:
        self._check(event)
        handlers = self._handlers.get(event) or []
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._handlers.get(event) or [])
        return sum(len(items) for items in self._handlers.values())

    async def emit(self, event: str, *args: Any) -> None:
        self._check(event)
        for handler in list(self._handlers.get(event) or []):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
