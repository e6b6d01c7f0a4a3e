# backend/aihub/services/chat/events.py
"""
Stream envelope: one JSON object per SSE ``data:`` frame, discriminated by ``type``.

    {"type": "chatId", "chatId": "...", "isNew": true}   always first
    {"type": "content", "content": "..."}                zero or more
    {"type": "done"} | {"type": "error", "error": "..."} exactly one, always last
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator, Optional

Event = Dict[str, Any]

CHAT_ID = "chatId"
CONTENT = "content"
DONE = "done"
ERROR = "error"

TERMINAL_TYPES = frozenset({DONE, ERROR})


def chat_id_event(chat_id: str, is_new: bool) -> Event:
    return {"type": CHAT_ID, "chatId": chat_id, "isNew": is_new}


def content_event(content: str) -> Event:
    return {"type": CONTENT, "content": content}


def done_event() -> Event:
    return {"type": DONE}


def error_event(error: str) -> Event:
    return {"type": ERROR, "error": error}


def encode_sse(event: Event) -> bytes:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n".encode("utf-8")


def parse_sse_line(line: str) -> Optional[Event]:
    """Decode one ``data:`` line; comments, blank lines and broken JSON yield None."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if not payload:
        return None
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) and "type" in obj else None


def parse_sse(lines: Iterable[str]) -> Iterator[Event]:
    for line in lines:
        event = parse_sse_line(line)
        if event is not None:
            yield event
