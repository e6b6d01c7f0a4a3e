# backend/tests/test_orchestrator.py
from __future__ import annotations

import asyncio
from typing import List, Tuple

import pytest
from sqlalchemy import func, select

from aihub.models import Chat, CreditTransaction, Message
from aihub.services.chat import conversation_store as store
from aihub.services.chat import model_registry as registry
from aihub.services.chat.orchestrator import (
    NO_RESPONSE_PLACEHOLDER,
    ChatOrchestrator,
    RejectReason,
    TurnFailed,
    TurnRejected,
    TurnRequest,
    TurnState,
    drain_finalizers,
)
from aihub.services.credits import ledger

from conftest import FakeGateway

GPT4_COST = 11


def _orch(sessions, gateway) -> ChatOrchestrator:
    return ChatOrchestrator(sessions, gateway, max_input_chars=4000)


async def _messages(sessions, chat_id) -> List[Tuple[str, str]]:
    async with sessions() as db:
        rows = (await db.execute(select(Message).where(Message.chat_id == chat_id).order_by(Message.id))).scalars()
        return [(m.role, m.content) for m in rows]


async def _balance(sessions, user_id) -> int:
    async with sessions() as db:
        return await ledger.get_balance(db, user_id)


async def _usage_rows(sessions, user_id) -> int:
    async with sessions() as db:
        return await db.scalar(
            select(func.count())
            .select_from(CreditTransaction)
            .where(CreditTransaction.user_id == user_id, CreditTransaction.type == "usage")
        )


async def test_completed_turn_envelope_persistence_and_debit(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["سلام", " ", "دنیا"])
    orch = _orch(sessions, gw)

    turn = await orch.prepare(user_id, TurnRequest(message="سلام!", model="GPT4"))
    events = [e async for e in orch.stream(turn)]

    assert events[0] == {"type": "chatId", "chatId": turn.chat_id, "isNew": True}
    assert [e["content"] for e in events[1:-1]] == ["سلام", " ", "دنیا"]
    assert events[-1] == {"type": "done"}
    assert turn.state is TurnState.COMPLETED

    assert await _messages(sessions, turn.chat_id) == [("user", "سلام!"), ("assistant", "سلام دنیا")]
    assert await _balance(sessions, user_id) == 50 - GPT4_COST
    assert await _usage_rows(sessions, user_id) == 1

    prompt = gw.calls[0]["messages"]
    assert gw.calls[0]["model"] == "GPT4"
    assert prompt[0]["role"] == "system"
    assert prompt[-1] == {"role": "user", "content": "سلام!"}


async def test_follow_up_turn_carries_history(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["پاسخ"])
    orch = _orch(sessions, gw)

    first = await orch.prepare(user_id, TurnRequest(message="q1", agent_type="CODER"))
    [e async for e in orch.stream(first)]
    second = await orch.prepare(user_id, TurnRequest(message="q2", chat_id=first.chat_id, agent_type="CODER"))
    events = [e async for e in orch.stream(second)]

    assert events[0] == {"type": "chatId", "chatId": first.chat_id, "isNew": False}
    prompt = gw.calls[1]["messages"]
    assert prompt[0]["content"] == registry.system_prompt("CODER")
    assert prompt[1:] == [
        {"role": "user", "content": "q1"},
        {"role": "assistant", "content": "پاسخ"},
        {"role": "user", "content": "q2"},
    ]


async def test_unknown_chat_id_starts_a_new_chat(sessions, make_user):
    user_id = await make_user()
    orch = _orch(sessions, FakeGateway())
    turn = await orch.prepare(user_id, TurnRequest(message="hi", chat_id="does-not-exist"))
    assert turn.is_new_chat and turn.chat_id != "does-not-exist"


@pytest.mark.parametrize(
    "user_id, message, reason, status",
    [
        (None, "hi", RejectReason.UNAUTHENTICATED, 401),
        ("u", "", RejectReason.EMPTY_MESSAGE, 400),
        ("u", "   \n\t", RejectReason.EMPTY_MESSAGE, 400),
        ("u", "x" * 4001, RejectReason.MESSAGE_TOO_LONG, 400),
    ],
)
async def test_validation_rejects_before_any_effect(sessions, user_id, message, reason, status):
    gw = FakeGateway()
    with pytest.raises(TurnRejected) as exc:
        await _orch(sessions, gw).prepare(user_id, TurnRequest(message=message))
    assert exc.value.reason is reason
    assert exc.value.status_code == status
    assert gw.calls == []


async def test_insufficient_credits_creates_nothing(sessions, make_user):
    user_id = await make_user(credits=5)
    gw = FakeGateway()

    with pytest.raises(TurnRejected) as exc:
        await _orch(sessions, gw).prepare(user_id, TurnRequest(message="hello", model="GPT4"))

    assert exc.value.status_code == 402
    assert exc.value.error == "اعتبار کافی نیست"
    async with sessions() as db:
        assert await db.scalar(select(func.count()).select_from(Chat)) == 0
        assert await db.scalar(select(func.count()).select_from(Message)) == 0
    assert await _balance(sessions, user_id) == 5
    assert gw.calls == []


async def test_cancel_right_after_chat_id(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway()
    orch = _orch(sessions, gw)
    turn = await orch.prepare(user_id, TurnRequest(message="hi"))

    stream = orch.stream(turn)
    first = await stream.__anext__()
    await stream.aclose()

    assert first["type"] == "chatId"
    assert turn.state is TurnState.ABORTED
    assert gw.opened == 0
    assert await _messages(sessions, turn.chat_id) == [("user", "hi")]
    assert await _balance(sessions, user_id) == 50
    assert await _usage_rows(sessions, user_id) == 0


async def test_cancel_mid_stream_closes_upstream_and_persists_nothing(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["a", "b", "c", "d"])
    orch = _orch(sessions, gw)
    turn = await orch.prepare(user_id, TurnRequest(message="hi"))

    stream = orch.stream(turn)
    seen = [await stream.__anext__() for _ in range(3)]  # chatId + 2 deltas
    await stream.aclose()
    # closing twice is harmless
    await stream.aclose()

    assert [e["type"] for e in seen] == ["chatId", "content", "content"]
    assert turn.state is TurnState.ABORTED
    assert gw.closed == 1
    assert await _messages(sessions, turn.chat_id) == [("user", "hi")]
    assert await _balance(sessions, user_id) == 50


async def test_task_cancellation_while_provider_is_silent(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["a", "b", "c"], block_after=1)
    orch = _orch(sessions, gw)
    turn = await orch.prepare(user_id, TurnRequest(message="hi"))

    received = []

    async def consume():
        async for event in orch.stream(turn):
            received.append(event)

    task = asyncio.create_task(consume())
    await asyncio.wait_for(gw.blocked.wait(), timeout=5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert [e["type"] for e in received] == ["chatId", "content"]
    assert turn.state is TurnState.ABORTED
    assert gw.closed == 1
    assert await _messages(sessions, turn.chat_id) == [("user", "hi")]
    assert await _usage_rows(sessions, user_id) == 0


async def test_disconnect_check_aborts_without_terminal_event(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["a", "b", "c"])
    orch = _orch(sessions, gw)
    turn = await orch.prepare(user_id, TurnRequest(message="hi"))

    polls = 0

    async def is_cancelled() -> bool:
        nonlocal polls
        polls += 1
        return polls > 1

    events = [e async for e in orch.stream(turn, is_cancelled=is_cancelled)]

    assert [e["type"] for e in events] == ["chatId", "content"]
    assert turn.state is TurnState.ABORTED
    assert gw.closed == 1
    assert await _balance(sessions, user_id) == 50


async def test_provider_error_after_two_deltas(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["a", "b", "c"], fail_after=2)
    orch = _orch(sessions, gw)
    turn = await orch.prepare(user_id, TurnRequest(message="hi"))

    events = [e async for e in orch.stream(turn)]

    assert [e["type"] for e in events] == ["chatId", "content", "content", "error"]
    assert events[-1]["error"] == "خطا در دریافت پاسخ"
    assert turn.state is TurnState.FAILED
    assert await _messages(sessions, turn.chat_id) == [("user", "hi")]
    assert await _balance(sessions, user_id) == 50
    assert await _usage_rows(sessions, user_id) == 0


async def test_empty_reply_stores_placeholder(sessions, make_user):
    user_id = await make_user(credits=50)
    orch = _orch(sessions, FakeGateway([]))
    turn = await orch.prepare(user_id, TurnRequest(message="hi"))

    events = [e async for e in orch.stream(turn)]

    assert [e["type"] for e in events] == ["chatId", "done"]
    assert await _messages(sessions, turn.chat_id) == [("user", "hi"), ("assistant", NO_RESPONSE_PLACEHOLDER)]


async def test_cancelled_turn_then_completed_turn_debits_once(sessions, make_user):
    """Balance 22: first turn cancelled mid-stream, second completes -> one assistant message, balance 11."""
    user_id = await make_user(credits=22)
    gw = FakeGateway(["x", "y", "z"])
    orch = _orch(sessions, gw)

    first = await orch.prepare(user_id, TurnRequest(message="one", model="GPT4"))
    stream = orch.stream(first)
    await stream.__anext__()
    await stream.__anext__()
    await stream.aclose()

    second = await orch.prepare(user_id, TurnRequest(message="two", chat_id=first.chat_id, model="GPT4"))
    events = [e async for e in orch.stream(second)]

    assert events[-1] == {"type": "done"}
    msgs = await _messages(sessions, first.chat_id)
    assert [role for role, _ in msgs].count("assistant") == 1
    assert msgs == [("user", "one"), ("user", "two"), ("assistant", "xyz")]
    assert await _balance(sessions, user_id) == 11


async def test_debit_miss_at_finalize_still_completes_the_turn(sessions, make_user):
    """Two overlapping turns pass the pre-check on 11 credits; the second debit misses and is only logged."""
    user_id = await make_user(credits=11)
    orch = _orch(sessions, FakeGateway(["ok"]))

    a = await orch.prepare(user_id, TurnRequest(message="a"))
    b = await orch.prepare(user_id, TurnRequest(message="b"))
    events_a = [e async for e in orch.stream(a)]
    events_b = [e async for e in orch.stream(b)]

    assert events_a[-1]["type"] == "done"
    assert events_b[-1]["type"] == "done"
    assert await _messages(sessions, b.chat_id) == [("user", "b"), ("assistant", "ok")]
    assert await _balance(sessions, user_id) == 0
    assert await _usage_rows(sessions, user_id) == 1


async def test_unknown_model_is_charged_as_default(sessions, make_user):
    user_id = await make_user(credits=50)
    gw = FakeGateway(["ok"])
    orch = _orch(sessions, gw)
    turn = await orch.prepare(user_id, TurnRequest(message="hi", model="NOPE", agent_type="NOPE"))
    [e async for e in orch.stream(turn)]

    assert (turn.model, turn.agent_type) == ("GPT4", "GENERAL")
    assert gw.calls[0]["model"] == "GPT4"
    assert await _balance(sessions, user_id) == 50 - GPT4_COST


async def test_run_non_streaming(sessions, make_user):
    user_id = await make_user(credits=50)
    orch = _orch(sessions, FakeGateway(["یک", " ", "پاسخ"]))

    result = await orch.run(user_id, TurnRequest(message="سوال", model="LLAMA"))

    assert result.message == "یک پاسخ"
    assert await _messages(sessions, result.chat_id) == [("user", "سوال"), ("assistant", "یک پاسخ")]
    assert await _balance(sessions, user_id) == 50 - registry.required_credits("LLAMA")


async def test_run_provider_failure_keeps_user_message_only(sessions, make_user):
    user_id = await make_user(credits=50)
    orch = _orch(sessions, FakeGateway(fail_after=0))

    with pytest.raises(TurnFailed) as exc:
        await orch.run(user_id, TurnRequest(message="سوال"))

    assert await _messages(sessions, exc.value.chat_id) == [("user", "سوال")]
    assert await _balance(sessions, user_id) == 50


async def test_foreign_chat_id_never_reaches_the_owners_chat(sessions, make_user):
    alice = await make_user()
    bob = await make_user()
    orch = _orch(sessions, FakeGateway(["ok"]))

    theirs = await orch.prepare(alice, TurnRequest(message="a"))
    [e async for e in orch.stream(theirs)]

    mine = await orch.prepare(bob, TurnRequest(message="b", chat_id=theirs.chat_id))
    events = [e async for e in orch.stream(mine)]

    assert mine.is_new_chat and mine.chat_id != theirs.chat_id
    assert events[0]["chatId"] == mine.chat_id
    assert await _messages(sessions, theirs.chat_id) == [("user", "a"), ("assistant", "ok")]
    assert await _messages(sessions, mine.chat_id) == [("user", "b"), ("assistant", "ok")]


async def test_cancel_during_finalize_still_completes_the_turn(sessions, make_user, monkeypatch):
    user_id = await make_user(credits=50)
    orch = _orch(sessions, FakeGateway(["پاسخ"]))
    turn = await orch.prepare(user_id, TurnRequest(message="سلام"))

    entered, release = asyncio.Event(), asyncio.Event()
    real_append = store.append_message

    async def slow_append(db, chat_id, role, content):
        if role == "assistant":
            entered.set()
            await release.wait()
        return await real_append(db, chat_id, role, content)

    monkeypatch.setattr(store, "append_message", slow_append)

    seen = []

    async def consume():
        async for e in orch.stream(turn):
            seen.append(e)

    task = asyncio.create_task(consume())
    await asyncio.wait_for(entered.wait(), timeout=5)
    assert turn.state is TurnState.FINALIZING

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    release.set()
    await asyncio.wait_for(drain_finalizers(), timeout=5)

    assert [e["type"] for e in seen] == ["chatId", "content"]
    assert turn.state is TurnState.COMPLETED
    assert await _messages(sessions, turn.chat_id) == [("user", "سلام"), ("assistant", "پاسخ")]
    assert await _usage_rows(sessions, user_id) == 1
    assert await _balance(sessions, user_id) == 50 - GPT4_COST


async def test_detached_finalize_failure_is_recorded(sessions, make_user, monkeypatch):
    user_id = await make_user(credits=50)
    orch = _orch(sessions, FakeGateway(["پاسخ"]))
    turn = await orch.prepare(user_id, TurnRequest(message="سلام"))

    entered, release = asyncio.Event(), asyncio.Event()

    async def broken_append(db, chat_id, role, content):
        entered.set()
        await release.wait()
        raise RuntimeError("chat vanished")

    monkeypatch.setattr(store, "append_message", broken_append)

    async def consume():
        async for _ in orch.stream(turn):
            pass

    task = asyncio.create_task(consume())
    await asyncio.wait_for(entered.wait(), timeout=5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    release.set()
    await asyncio.wait_for(drain_finalizers(), timeout=5)

    assert turn.state is TurnState.FAILED
    assert await _usage_rows(sessions, user_id) == 0
    assert await _balance(sessions, user_id) == 50
