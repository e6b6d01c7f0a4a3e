from datetime import datetime
from typing import Optional

from pydantic import Field

from aihub.api.v1.schemas.common import CamelModel


class OtpRequest(CamelModel):
    phone: str


class OtpResponse(CamelModel):
    success: bool = True
    message: str
    expires_in: int


class VerifyRequest(CamelModel):
    phone: str
    code: str


class UserOut(CamelModel):
    id: str
    phone: str
    name: Optional[str] = None
    credits: int
    created_at: datetime


class VerifyResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    is_new_user: bool
    user: UserOut


class ProfileUpdate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
