# backend/aihub/client/transcript.py
"""
Client-side transcript reducer.

Pure functions over an immutable ``TranscriptState``; the server's event
envelope is the only input besides user actions.

* ``submit``      optimistic user message, loading on
* ``apply_event`` chatId -> remember id, content -> accumulate,
                  done -> materialize assistant message, error -> drop the
                  optimistic user message and raise a toast
* ``fail``        transport / HTTP failure, same outcome as an error event
* ``abort``       user cancelled: keep the user message, drop the partial reply
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from aihub.services.chat import events

DEFAULT_ERROR = "خطا در ارتباط با سرور"

_ids = itertools.count(1)


@dataclass(frozen=True)
class LocalMessage:
    id: str
    role: str
    content: str


@dataclass(frozen=True)
class TranscriptState:
    messages: Tuple[LocalMessage, ...] = ()
    chat_id: Optional[str] = None
    streaming_content: str = ""
    is_loading: bool = False
    pending_user_id: Optional[str] = None
    toast: Optional[str] = field(default=None, compare=False)


def _next_id(suffix: str = "") -> str:
    return f"local-{next(_ids)}{suffix}"


def submit(state: TranscriptState, content: str) -> Tuple[TranscriptState, LocalMessage]:
    msg = LocalMessage(id=_next_id(), role="user", content=content)
    new = replace(
        state,
        messages=state.messages + (msg,),
        streaming_content="",
        is_loading=True,
        pending_user_id=msg.id,
        toast=None,
    )
    return new, msg


def apply_event(state: TranscriptState, event: events.Event) -> TranscriptState:
    kind = event.get("type")
    if kind == events.CHAT_ID:
        return replace(state, chat_id=event.get("chatId") or state.chat_id)
    if kind == events.CONTENT:
        return replace(state, streaming_content=state.streaming_content + str(event.get("content") or ""))
    if kind == events.DONE:
        reply = LocalMessage(id=_next_id("-assistant"), role="assistant", content=state.streaming_content)
        return replace(
            state,
            messages=state.messages + (reply,),
            streaming_content="",
            is_loading=False,
            pending_user_id=None,
        )
    if kind == events.ERROR:
        return fail(state, str(event.get("error") or DEFAULT_ERROR))
    return state


def fail(state: TranscriptState, error: Optional[str] = None) -> TranscriptState:
    pending = state.pending_user_id
    return replace(
        state,
        messages=tuple(m for m in state.messages if m.id != pending),
        streaming_content="",
        is_loading=False,
        pending_user_id=None,
        toast=error or DEFAULT_ERROR,
    )


def abort(state: TranscriptState) -> TranscriptState:
    return replace(state, streaming_content="", is_loading=False, pending_user_id=None)


def new_chat(state: TranscriptState) -> TranscriptState:
    return TranscriptState()


def load_chat(chat_id: str, messages: Tuple[LocalMessage, ...]) -> TranscriptState:
    return TranscriptState(messages=tuple(messages), chat_id=chat_id)
