# backend/aihub/services/chat/orchestrator.py
"""
Chat turn orchestration
=======================
One user turn, end to end:

    idle -> authorizing -> session_resolving -> generating -> finalizing -> completed
                                                      \\-> aborted (client went away)
                                                      \\-> failed  (provider / persistence error)

``prepare`` covers everything that may still be answered with a plain HTTP
status (401/400/402/500). ``stream`` produces the event envelope; once it has
started, failures are reported as an ``error`` event only.

The credit check in ``prepare`` is advisory. The binding debit happens after
generation; if it fails there (balance spent concurrently) the turn still
completes and the failure is logged for reconciliation.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aihub.core import errors
from aihub.core.config import settings
from aihub.models import ROLE_ASSISTANT, ROLE_USER
from aihub.services.chat import conversation_store as store
from aihub.services.chat import events
from aihub.services.chat import model_registry as registry
from aihub.services.credits import ledger
from aihub.services.llm.completion_gateway import CompletionBackend, ProviderError

log = structlog.get_logger(__name__)

NO_RESPONSE_PLACEHOLDER = "متاسفانه پاسخی دریافت نشد"


class TurnState(str, enum.Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    SESSION_RESOLVING = "session_resolving"
    GENERATING = "generating"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class RejectReason(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    EMPTY_MESSAGE = "empty_message"
    MESSAGE_TOO_LONG = "message_too_long"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    INTERNAL = "internal"


_REJECT_STATUS = {
    RejectReason.UNAUTHENTICATED: (401, errors.MSG_LOGIN_REQUIRED),
    RejectReason.EMPTY_MESSAGE: (400, errors.MSG_EMPTY_MESSAGE),
    RejectReason.MESSAGE_TOO_LONG: (400, errors.MSG_MESSAGE_TOO_LONG),
    RejectReason.INSUFFICIENT_CREDITS: (402, errors.MSG_INSUFFICIENT_CREDITS),
    RejectReason.INTERNAL: (500, errors.MSG_CHAT_PROCESSING_FAILED),
}


class TurnRejected(Exception):
    """Turn refused before any event was streamed."""

    def __init__(self, reason: RejectReason) -> None:
        self.reason = reason
        self.status_code, self.error = _REJECT_STATUS[reason]
        super().__init__(reason.value)


class TurnFailed(Exception):
    """Non-streaming turn failed after the user message was stored."""

    def __init__(self, chat_id: str, error: str = errors.MSG_CHAT_PROCESSING_FAILED) -> None:
        super().__init__(error)
        self.chat_id = chat_id
        self.error = error


@dataclass
class TurnRequest:
    message: str
    chat_id: Optional[str] = None
    model: Optional[str] = None
    agent_type: Optional[str] = None


@dataclass
class PreparedTurn:
    user_id: str
    chat_id: str
    is_new_chat: bool
    model: str
    agent_type: str
    required_credits: int
    prompt: List[Dict[str, str]]
    state: TurnState = TurnState.IDLE


@dataclass
class TurnResult:
    chat_id: str
    message: str


CancelCheck = Callable[[], Awaitable[bool]]

# finalizers that outlived a cancelled consumer
_detached: Set["asyncio.Future[str]"] = set()


def _detach(finalize: "asyncio.Future[str]", turn: PreparedTurn, ctx) -> None:
    def _done(fut: "asyncio.Future[str]") -> None:
        _detached.discard(fut)
        if fut.cancelled():
            turn.state = TurnState.FAILED
            ctx.error("turn.persist_failed", detached=True, error="finalize cancelled")
            return
        exc = fut.exception()
        if exc is not None:
            turn.state = TurnState.FAILED
            ctx.error("turn.persist_failed", detached=True, error=str(exc), exc_info=exc)
            return
        turn.state = TurnState.COMPLETED
        ctx.info("turn.completed_detached")

    _detached.add(finalize)
    finalize.add_done_callback(_done)


async def drain_finalizers() -> None:
    """Wait for detached finalizers (assistant message + debit) still in flight."""
    while _detached:
        await asyncio.gather(*list(_detached), return_exceptions=True)


class ChatOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: CompletionBackend,
        *,
        max_input_chars: Optional[int] = None,
    ) -> None:
        self._sessions = session_factory
        self._gateway = gateway
        self._max_input_chars = settings.chat_input_max_chars if max_input_chars is None else max_input_chars

    # ------------------------------------------------------------------ #
    # idle -> authorizing -> session_resolving
    # ------------------------------------------------------------------ #
    async def prepare(self, user_id: Optional[str], request: TurnRequest) -> PreparedTurn:
        if not user_id:
            raise TurnRejected(RejectReason.UNAUTHENTICATED)
        message = request.message or ""
        if not message.strip():
            raise TurnRejected(RejectReason.EMPTY_MESSAGE)
        if self._max_input_chars > 0 and len(message) > self._max_input_chars:
            raise TurnRejected(RejectReason.MESSAGE_TOO_LONG)

        model = registry.resolve_model_id(request.model)
        agent_type = registry.resolve_agent_id(request.agent_type)
        required = registry.required_credits(model)
        ctx = log.bind(user_id=user_id, chat_id=request.chat_id, model=model)

        try:
            async with self._sessions() as db:
                balance = await ledger.get_balance(db, user_id)
                if balance < required:
                    ctx.info("turn.rejected", reason="insufficient_credits", balance=balance, required=required)
                    raise TurnRejected(RejectReason.INSUFFICIENT_CREDITS)

                chat = await store.get_chat(db, request.chat_id, user_id)
                is_new = chat is None
                if chat is None:
                    chat = await store.create_chat(db, user_id, model, agent_type, message)
                    history: List[Dict[str, str]] = []
                else:
                    history = [{"role": m.role, "content": m.content} for m in chat.messages]

                # stored even if generation fails later
                await store.append_message(db, chat.id, ROLE_USER, message)
                chat_id = chat.id
        except TurnRejected:
            raise
        except Exception:
            ctx.exception("turn.prepare_failed")
            raise TurnRejected(RejectReason.INTERNAL)

        ctx.info("turn.prepared", resolved_chat_id=chat_id, is_new_chat=is_new, history=len(history))
        return PreparedTurn(
            user_id=user_id,
            chat_id=chat_id,
            is_new_chat=is_new,
            model=model,
            agent_type=agent_type,
            required_credits=required,
            prompt=registry.build_prompt(agent_type, history, message),
            state=TurnState.SESSION_RESOLVING,
        )

    # ------------------------------------------------------------------ #
    # generating -> finalizing -> completed | aborted | failed
    # ------------------------------------------------------------------ #
    async def stream(
        self,
        turn: PreparedTurn,
        *,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> AsyncIterator[events.Event]:
        ctx = log.bind(user_id=turn.user_id, chat_id=turn.chat_id, model=turn.model)
        turn.state = TurnState.GENERATING
        accum: List[str] = []
        upstream = self._gateway.stream_complete(turn.model, turn.prompt)
        try:
            yield events.chat_id_event(turn.chat_id, turn.is_new_chat)
            async for delta in upstream:
                if is_cancelled is not None and await is_cancelled():
                    turn.state = TurnState.ABORTED
                    ctx.info("turn.aborted", deltas=len(accum), via="disconnect")
                    return
                accum.append(delta)
                yield events.content_event(delta)
        except (asyncio.CancelledError, GeneratorExit):
            turn.state = TurnState.ABORTED
            ctx.info("turn.aborted", deltas=len(accum), via="cancel")
            raise
        except Exception as exc:
            turn.state = TurnState.FAILED
            ctx.error("turn.provider_failed", deltas=len(accum), error=str(exc), exc_info=not isinstance(exc, ProviderError))
            yield events.error_event(errors.MSG_STREAM_FAILED)
            return
        finally:
            aclose = getattr(upstream, "aclose", None)
            if aclose is not None:
                await aclose()

        turn.state = TurnState.FINALIZING
        finalize = asyncio.ensure_future(self._finalize(turn, "".join(accum)))
        try:
            # past the last chunk the turn counts as delivered; cancellation is no longer observed
            await asyncio.shield(finalize)
        except asyncio.CancelledError:
            ctx.info("turn.cancel_ignored_during_finalize")
            _detach(finalize, turn, ctx)
            raise
        except Exception:
            turn.state = TurnState.FAILED
            ctx.exception("turn.persist_failed")
            yield events.error_event(errors.MSG_STREAM_FAILED)
            return

        turn.state = TurnState.COMPLETED
        yield events.done_event()

    async def run(self, user_id: Optional[str], request: TurnRequest) -> TurnResult:
        """Non-streaming turn: same authorization, persistence and debit ordering."""
        turn = await self.prepare(user_id, request)
        ctx = log.bind(user_id=turn.user_id, chat_id=turn.chat_id, model=turn.model)
        turn.state = TurnState.GENERATING
        try:
            text = await self._gateway.complete(turn.model, turn.prompt)
        except Exception as exc:
            turn.state = TurnState.FAILED
            ctx.error("turn.provider_failed", error=str(exc), exc_info=not isinstance(exc, ProviderError))
            raise TurnFailed(turn.chat_id) from exc

        turn.state = TurnState.FINALIZING
        try:
            reply = await self._finalize(turn, text)
        except Exception as exc:
            turn.state = TurnState.FAILED
            ctx.exception("turn.persist_failed")
            raise TurnFailed(turn.chat_id) from exc
        turn.state = TurnState.COMPLETED
        return TurnResult(chat_id=turn.chat_id, message=reply)

    async def _finalize(self, turn: PreparedTurn, text: str) -> str:
        reply = text or NO_RESPONSE_PLACEHOLDER
        async with self._sessions() as db:
            await store.append_message(db, turn.chat_id, ROLE_ASSISTANT, reply)
            result = await ledger.debit(
                db,
                turn.user_id,
                turn.required_credits,
                f"پیام چت با مدل {turn.model}",
            )
        if not result.success:
            log.warning(
                "turn.debit_failed",
                user_id=turn.user_id,
                chat_id=turn.chat_id,
                model=turn.model,
                amount=turn.required_credits,
                reason=result.error.value if result.error else None,
            )
        return reply
