from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from aihub.api.v1.dependencies.auth import get_optional_user_id
from aihub.api.v1.dependencies.services import get_orchestrator
from aihub.api.v1.schemas.chat import ChatTurnRequest
from aihub.api.v1.schemas.common import ErrorResponse
from aihub.core.errors import error_response
from aihub.services.chat import events
from aihub.services.chat.orchestrator import ChatOrchestrator, TurnRejected, TurnRequest

router = APIRouter()
log = logging.getLogger("uvicorn.error")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/chat/stream",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/event-stream": {}}},
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        402: {"model": ErrorResponse},
    },
)
async def chat_stream(
    body: ChatTurnRequest,
    request: Request,
    user_id: Optional[str] = Depends(get_optional_user_id),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Input (JSON):
      { "message": "...", "chatId": "...?", "model": "GPT4", "agentType": "GENERAL" }
    Output: text/event-stream, one JSON envelope per ``data:`` frame:
      chatId, content*, done | error
    """
    try:
        turn = await orchestrator.prepare(
            user_id,
            TurnRequest(message=body.message, chat_id=body.chat_id, model=body.model, agent_type=body.agent_type),
        )
    except TurnRejected as exc:
        log.info("chat stream rejected: status=%s reason=%s user=%s", exc.status_code, exc.reason.value, user_id)
        return error_response(exc.status_code, exc.error)

    async def gen() -> AsyncGenerator[bytes, None]:
        stream = orchestrator.stream(turn, is_cancelled=request.is_disconnected)
        try:
            async for event in stream:
                yield events.encode_sse(event)
        finally:
            await stream.aclose()

    return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)

