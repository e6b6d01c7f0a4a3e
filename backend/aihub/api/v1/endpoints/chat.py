from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from aihub.api.v1.dependencies.auth import get_current_user_id, get_optional_user_id
from aihub.api.v1.dependencies.services import get_orchestrator
from aihub.api.v1.schemas.chat import (
    ChatCatalog,
    ChatDetail,
    ChatListItem,
    ChatTurnRequest,
    ChatTurnResponse,
    MessageOut,
    ModelOut,
)
from aihub.api.v1.schemas.common import SuccessResponse
from aihub.core.errors import MSG_CHAT_ID_REQUIRED, MSG_CHAT_NOT_FOUND, ApiError
from aihub.database import get_db
from aihub.services.chat import conversation_store as store
from aihub.services.chat import model_registry as registry
from aihub.services.chat.orchestrator import ChatOrchestrator, TurnFailed, TurnRejected, TurnRequest

router = APIRouter()
log = logging.getLogger("uvicorn.error")


@router.post("/chat", response_model=ChatTurnResponse, response_model_by_alias=True)
async def chat_turn(
    body: ChatTurnRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        result = await orchestrator.run(
            user_id,
            TurnRequest(message=body.message, chat_id=body.chat_id, model=body.model, agent_type=body.agent_type),
        )
    except TurnRejected as exc:
        raise ApiError(exc.status_code, exc.error)
    except TurnFailed as exc:
        log.warning("chat turn failed: user=%s chat=%s", user_id, exc.chat_id)
        raise ApiError(500, exc.error)
    return ChatTurnResponse(chat_id=result.chat_id, message=result.message)


@router.get("/chat", response_model=None)
async def get_chats(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """With ``chatId``: that chat and its messages. Without: all chats, newest first, with a preview."""
    if chat_id:
        chat = await store.get_chat(db, chat_id, user_id)
        if chat is None:
            raise ApiError(404, MSG_CHAT_NOT_FOUND)
        return ChatDetail.model_validate(chat).model_dump(by_alias=True, mode="json")

    summaries = await store.list_chats(db, user_id)
    items: List[dict] = []
    for s in summaries:
        preview = [MessageOut.model_validate(s.last_message)] if s.last_message is not None else []
        item = ChatListItem(
            id=s.chat.id,
            title=s.chat.title,
            model=s.chat.model,
            agent_type=s.chat.agent_type,
            created_at=s.chat.created_at,
            updated_at=s.chat.updated_at,
            messages=preview,
        )
        items.append(item.model_dump(by_alias=True, mode="json"))
    return items


@router.delete("/chat", response_model=SuccessResponse, response_model_by_alias=True)
async def delete_chat(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not chat_id:
        raise ApiError(400, MSG_CHAT_ID_REQUIRED)
    if not await store.delete_chat(db, chat_id, user_id):
        raise ApiError(404, MSG_CHAT_NOT_FOUND)
    log.info("chat deleted: user=%s chat=%s", user_id, chat_id)
    return SuccessResponse()


@router.get("/chat/models", response_model=ChatCatalog, response_model_by_alias=True)
async def chat_models():
    """Selectable models with their per-message cost, plus the agent ids."""
    return ChatCatalog(
        default_model=registry.default_model_id(),
        default_agent=registry.default_agent_id(),
        models=[
            ModelOut(
                id=m.id,
                name=m.display_name,
                credits=m.credits,
                required_credits=registry.required_credits(m.id),
            )
            for m in registry.list_models()
        ],
        agents=registry.list_agents(),
    )
