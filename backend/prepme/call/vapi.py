from __future__ import annotations

import logging

import httpx

from core import config
from prepme.call import events
from prepme.call.events import CallEventEmitter, CallEventHandler

logger = logging.getLogger("prepme.call.vapi")

_ERROR_REASON_MARKERS = ("error", "failed")


class VapiCallClient:
    """
    Server-side stand-in for the Vapi web SDK: starts and stops calls over the
    REST API and turns webhook server messages into SDK-style events.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_sec: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key if api_key is not None else config.VAPI_API_KEY
        self._base_url = str(base_url or config.VAPI_BASE_URL).rstrip("/")
        self._timeout_sec = timeout_sec
        self._transport = transport
        self._emitter = CallEventEmitter()
        self.call_id: str | None = None
        self.web_call_url: str | None = None
        self.control_url: str | None = None

    def on(self, event: str, handler: CallEventHandler) -> None:
        self._emitter.on(event, handler)

    def off(self, event: str, handler: CallEventHandler) -> None:
        self._emitter.off(event, handler)

    def listener_count(self, event: str | None = None) -> int:
        return self._emitter.listener_count(event)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout_sec,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )

    async def start(self, target: str | dict, variable_values: dict) -> None:
        if isinstance(target, str):
            if not target:
                raise ValueError("Vapi workflow id is not configured")
            body = {
                "workflowId": target,
                "workflowOverrides": {"variableValues": dict(variable_values or {})},
            }
        else:
            body = {
                "assistant": dict(target),
                "assistantOverrides": {"variableValues": dict(variable_values or {})},
            }

        async with self._client() as client:
            response = await client.post(f"{self._base_url}/call/web", json=body)
            response.raise_for_status()
            data = response.json()

        self.call_id = str(data.get("id") or "") or None
        self.web_call_url = data.get("webCallUrl")
        self.control_url = (data.get("monitor") or {}).get("controlUrl")
        logger.info("vapi call created | call_id=%s", self.call_id)

    async def stop(self) -> None:
        if not self.control_url:
            logger.warning("vapi stop skipped, no control url | call_id=%s", self.call_id)
            return
        async with self._client() as client:
            response = await client.post(self.control_url, json={"type": "end-call"})
            response.raise_for_status()

    async def dispatch(self, message: dict) -> None:
        message_type = str((message or {}).get("type") or "")

        if message_type == "status-update":
            status = str(message.get("status") or "")
            if status == "in-progress":
                await self._emitter.emit(events.CALL_START)
            elif status == "ended":
                reason = str(message.get("endedReason") or "")
                if any(marker in reason for marker in _ERROR_REASON_MARKERS):
                    await self._emitter.emit(events.ERROR, RuntimeError(reason))
                await self._emitter.emit(events.CALL_END)
            return

        if message_type == "transcript":
            await self._emitter.emit(events.MESSAGE, {
                "type": "transcript",
                "transcriptType": str(message.get("transcriptType") or "partial"),
                "role": str(message.get("role") or ""),
                "transcript": str(message.get("transcript") or ""),
            })
            return

        if message_type == "speech-update":
            if str(message.get("role") or "assistant") != "assistant":
                return
            status = str(message.get("status") or "")
            if status == "started":
                await self._emitter.emit(events.SPEECH_START)
            elif status == "stopped":
                await self._emitter.emit(events.SPEECH_END)
            return

        logger.debug("vapi message ignored | type=%s call_id=%s", message_type, self.call_id)
