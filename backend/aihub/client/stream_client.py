# backend/aihub/client/stream_client.py
"""
Reference consumer for ``POST /api/v1/chat/stream``.

One outbound turn at a time: ``send`` cancels whatever is still in flight
(the HTTP stream is closed, which the server sees as a disconnect) before
starting the next turn. State lives in a ``TranscriptState``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from aihub.client import transcript
from aihub.services.chat import events

log = logging.getLogger("aihub.client")

STREAM_PATH = "/api/v1/chat/stream"


class ChatStreamClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        model: Optional[str] = None,
        agent_type: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 120.0,
    ) -> None:
        headers = {"Accept": "text/event-stream"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout)
        self.model = model
        self.agent_type = agent_type
        self.state = transcript.TranscriptState()
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def send(self, content: str) -> asyncio.Task:
        """Start a turn; returns the task driving it (await it to wait for the terminal event)."""
        await self.cancel()
        self.state, _ = transcript.submit(self.state, content)
        body: Dict[str, Any] = {"message": content, "chatId": self.state.chat_id}
        if self.model:
            body["model"] = self.model
        if self.agent_type:
            body["agentType"] = self.agent_type
        self._task = asyncio.create_task(self._run(body))
        return self._task

    async def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.state = transcript.abort(self.state)

    async def new_chat(self) -> None:
        await self.cancel()
        self.state = transcript.new_chat(self.state)

    async def _run(self, body: Dict[str, Any]) -> None:
        try:
            async with self._http.stream("POST", STREAM_PATH, json=body) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    self.state = transcript.fail(self.state, _error_message(resp))
                    return
                async for line in resp.aiter_lines():
                    event = events.parse_sse_line(line)
                    if event is None:
                        continue
                    self.state = transcript.apply_event(self.state, event)
                    if event["type"] in events.TERMINAL_TYPES:
                        return
            # stream ended without a terminal event
            if self.state.is_loading:
                self.state = transcript.fail(self.state)
        except httpx.HTTPError as exc:
            log.warning("chat stream failed: %s", exc)
            self.state = transcript.fail(self.state)

    async def aclose(self) -> None:
        await self.cancel()
        await self._http.aclose()


def _error_message(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    return body.get("error") if isinstance(body, dict) else None
