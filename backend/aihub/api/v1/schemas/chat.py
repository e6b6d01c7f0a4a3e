from datetime import datetime
from typing import List, Optional

from pydantic import Field

from aihub.api.v1.schemas.common import CamelModel


class ChatTurnRequest(CamelModel):
    message: str = ""
    chat_id: Optional[str] = None
    model: Optional[str] = None
    agent_type: Optional[str] = None


class ChatTurnResponse(CamelModel):
    success: bool = True
    chat_id: str
    message: str


class MessageOut(CamelModel):
    id: int
    role: str
    content: str
    created_at: datetime


class ChatOut(CamelModel):
    id: str
    title: str
    model: str
    agent_type: str
    created_at: datetime
    updated_at: datetime


class ChatDetail(ChatOut):
    messages: List[MessageOut] = Field(default_factory=list)


class ChatListItem(ChatOut):
    # latest message only
    messages: List[MessageOut] = Field(default_factory=list)


class ModelOut(CamelModel):
    id: str
    name: str
    credits: int
    required_credits: int


class ChatCatalog(CamelModel):
    default_model: str
    default_agent: str
    models: List[ModelOut]
    agents: List[str]
