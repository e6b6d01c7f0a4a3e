from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from aihub.api.v1.schemas.common import CamelModel


class MediaSubmitRequest(CamelModel):
    # voice requests send ``text`` instead of ``prompt``
    prompt: Optional[str] = None
    text: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)

    def effective_prompt(self) -> str:
        return (self.prompt or self.text or "").strip()


class MediaJobOut(CamelModel):
    id: str
    kind: str
    prompt: str
    model: str
    status: str
    result_url: Optional[str] = None
    error: Optional[str] = None
    credits: int
    created_at: datetime
    updated_at: datetime


class MediaSubmitResponse(CamelModel):
    success: bool = True
    job: MediaJobOut
    message: str
