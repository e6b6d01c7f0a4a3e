# backend/aihub/services/chat/conversation_store.py
"""
Chat / message persistence.

All lookups are scoped by owner: a chat owned by someone else is reported
exactly like a chat that does not exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from aihub.models import Chat, Message
from aihub.models._time import utcnow

TITLE_MAX_CHARS = 50
TITLE_ELLIPSIS = "..."

Role = Literal["user", "assistant"]


@dataclass
class ChatSummary:
    chat: Chat
    last_message: Optional[Message]


def derive_title(seed_message: str) -> str:
    if len(seed_message) > TITLE_MAX_CHARS:
        return seed_message[:TITLE_MAX_CHARS] + TITLE_ELLIPSIS
    return seed_message


async def create_chat(
    db: AsyncSession,
    user_id: str,
    model: str,
    agent_type: str,
    seed_message: str,
) -> Chat:
    chat = Chat(
        user_id=user_id,
        model=model,
        agent_type=agent_type,
        title=derive_title(seed_message),
    )
    db.add(chat)
    await db.commit()
    return chat


async def get_chat(db: AsyncSession, chat_id: Optional[str], user_id: str) -> Optional[Chat]:
    """Chat with its messages (oldest first), or None if absent or not owned by ``user_id``."""
    if not chat_id:
        return None
    result = await db.execute(
        select(Chat)
        .where(Chat.id == chat_id, Chat.user_id == user_id)
        .options(selectinload(Chat.messages))
    )
    return result.scalar_one_or_none()


async def append_message(db: AsyncSession, chat_id: str, role: Role, content: str) -> Message:
    now = utcnow()
    message = Message(chat_id=chat_id, role=role, content=content, created_at=now)
    db.add(message)
    await db.execute(update(Chat).where(Chat.id == chat_id).values(updated_at=now))
    await db.commit()
    return message


async def list_chats(db: AsyncSession, user_id: str) -> List[ChatSummary]:
    chats = list(
        (
            await db.execute(
                select(Chat)
                .where(Chat.user_id == user_id)
                .order_by(Chat.updated_at.desc(), Chat.created_at.desc())
            )
        ).scalars()
    )
    if not chats:
        return []

    # latest message per chat; ids grow with insertion order
    latest_ids = (
        select(func.max(Message.id))
        .where(Message.chat_id.in_([c.id for c in chats]))
        .group_by(Message.chat_id)
    )
    latest = (await db.execute(select(Message).where(Message.id.in_(latest_ids)))).scalars()
    by_chat = {m.chat_id: m for m in latest}
    return [ChatSummary(chat=c, last_message=by_chat.get(c.id)) for c in chats]


async def delete_chat(db: AsyncSession, chat_id: Optional[str], user_id: str) -> bool:
    if not chat_id:
        return False
    owned = await db.scalar(select(Chat.id).where(Chat.id == chat_id, Chat.user_id == user_id))
    if owned is None:
        return False
    await db.execute(delete(Message).where(Message.chat_id == chat_id))
    await db.execute(delete(Chat).where(Chat.id == chat_id))
    await db.commit()
    return True
