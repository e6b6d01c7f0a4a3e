# backend/aihub/services/auth/otp.py
"""
Phone OTP login.

* Iranian mobile numbers only, stored normalized as ``09XXXXXXXXX``
* 6-digit codes, valid for ``otp_ttl_sec`` (120 s), single use
* first successful verification creates the user with the welcome bonus;
  the user row and its ``bonus`` ledger entry commit together
"""

from __future__ import annotations

import re
import secrets
from datetime import timedelta
from typing import Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aihub.core.config import Settings, settings as default_settings
from aihub.models import OtpCode, TransactionType, User
from aihub.models._time import utcnow
from aihub.services.credits import ledger

log = structlog.get_logger(__name__)

PHONE_RE = re.compile(r"^(?:0|98|\+98)?9\d{9}$")
CODE_LENGTH = 6
WELCOME_BONUS_DESCRIPTION = "هدیه ثبت‌نام"


class InvalidPhone(ValueError):
    pass


def validate_phone(phone: Optional[str]) -> bool:
    return bool(phone) and PHONE_RE.match(phone.strip()) is not None


def normalize_phone(phone: str) -> str:
    """``+989121234567`` / ``989121234567`` / ``9121234567`` -> ``09121234567``."""
    if not validate_phone(phone):
        raise InvalidPhone(phone)
    digits = phone.strip().lstrip("+")
    return "0" + digits[-10:]


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


async def issue_otp(db: AsyncSession, phone: str, *, cfg: Optional[Settings] = None) -> OtpCode:
    cfg = cfg or default_settings
    otp = OtpCode(
        phone=normalize_phone(phone),
        code=generate_code(),
        expires_at=utcnow() + timedelta(seconds=cfg.otp_ttl_sec),
    )
    db.add(otp)
    await db.commit()
    log.info("otp.issued", phone=otp.phone, ttl=cfg.otp_ttl_sec)
    return otp


async def verify_otp(db: AsyncSession, phone: str, code: str) -> Optional[OtpCode]:
    """Consume a matching, unexpired, unused code. None when there is none."""
    phone = normalize_phone(phone)
    otp = await db.scalar(
        select(OtpCode)
        .where(
            OtpCode.phone == phone,
            OtpCode.code == (code or "").strip(),
            OtpCode.verified.is_(False),
            OtpCode.expires_at > utcnow(),
        )
        .order_by(OtpCode.created_at.desc(), OtpCode.id.desc())
        .limit(1)
    )
    if otp is None:
        log.info("otp.rejected", phone=phone)
        return None
    otp.verified = True
    await db.commit()
    return otp


async def find_or_create_user(
    db: AsyncSession,
    phone: str,
    *,
    cfg: Optional[Settings] = None,
) -> Tuple[User, bool]:
    cfg = cfg or default_settings
    phone = normalize_phone(phone)
    user = await db.scalar(select(User).where(User.phone == phone))
    if user is not None:
        return user, False

    user = User(phone=phone, credits=0)
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # registered concurrently
        await db.rollback()
        user = await db.scalar(select(User).where(User.phone == phone))
        if user is None:
            raise
        return user, False

    if cfg.welcome_bonus > 0:
        ok = await ledger.credit(db, user.id, cfg.welcome_bonus, TransactionType.BONUS, WELCOME_BONUS_DESCRIPTION)
        if not ok:
            raise RuntimeError(f"could not grant welcome bonus to {phone}")
        await db.refresh(user)
    else:
        await db.commit()
    log.info("user.created", user_id=user.id, phone=phone, bonus=cfg.welcome_bonus)
    return user, True
