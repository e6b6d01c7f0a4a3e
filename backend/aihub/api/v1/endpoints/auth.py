from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from aihub.api.v1.dependencies.services import get_rate_limiter
from aihub.api.v1.schemas.auth import OtpRequest, OtpResponse, UserOut, VerifyRequest, VerifyResponse
from aihub.core.config import settings
from aihub.core.errors import ApiError
from aihub.database import get_db
from aihub.services.auth import otp
from aihub.services.auth.token import create_access_token
from aihub.services.ratelimit import RateLimiter
from aihub.services.sms import kavenegar

router = APIRouter(prefix="/auth", tags=["auth"])
log = logging.getLogger("uvicorn.error")

MSG_INVALID_PHONE = "شماره موبایل نامعتبر است"
MSG_OTP_SENT = "کد تایید ارسال شد"
MSG_OTP_SEND_FAILED = "خطا در ارسال کد تایید"
MSG_OTP_INVALID = "کد تایید نامعتبر یا منقضی شده است"
MSG_TOO_MANY_REQUESTS = "تعداد درخواست‌ها بیش از حد مجاز است. لطفا بعدا تلاش کنید"


@router.post("/otp", response_model=OtpResponse, response_model_by_alias=True)
async def send_otp(
    body: OtpRequest,
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    if not otp.validate_phone(body.phone):
        raise ApiError(400, MSG_INVALID_PHONE)
    phone = otp.normalize_phone(body.phone)

    decision = await limiter.hit(f"otp:ratelimit:{phone}", settings.otp_rate_limit_per_hour, 3600)
    if not decision.allowed:
        log.info("otp throttled: phone=%s retry_after=%s", phone, decision.retry_after_sec)
        raise ApiError(429, MSG_TOO_MANY_REQUESTS)

    code = await otp.issue_otp(db, phone)
    if not await kavenegar.send_otp(phone, code.code):
        raise ApiError(500, MSG_OTP_SEND_FAILED)
    return OtpResponse(message=MSG_OTP_SENT, expires_in=settings.otp_ttl_sec)


@router.post("/verify", response_model=VerifyResponse, response_model_by_alias=True)
async def verify_otp(body: VerifyRequest, db: AsyncSession = Depends(get_db)):
    if not otp.validate_phone(body.phone):
        raise ApiError(400, MSG_INVALID_PHONE)
    used = await otp.verify_otp(db, body.phone, body.code)
    if used is None:
        raise ApiError(400, MSG_OTP_INVALID)

    user, created = await otp.find_or_create_user(db, body.phone)
    used.user_id = user.id
    await db.commit()
    log.info("login: user=%s new=%s", user.id, created)
    return VerifyResponse(
        access_token=create_access_token(user.id),
        is_new_user=created,
        user=UserOut.model_validate(user),
    )
