# backend/aihub/services/sms/kavenegar.py
"""
Kavenegar "verify lookup" client: sends the OTP through a pre-approved template.

    GET {base}/{api_key}/verify/lookup.json?receptor=..&token=..&template=..

Success is ``return.status == 200`` in the JSON body.
"""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from aihub.core.config import Settings, settings as default_settings

log = structlog.get_logger(__name__)


async def send_otp(
    phone: str,
    code: str,
    *,
    cfg: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """True when Kavenegar accepted the message. Without an API key the code is only logged."""
    cfg = cfg or default_settings
    if not cfg.kavenegar_api_key:
        log.warning("sms.disabled", phone=phone, code=code)
        return True

    url = f"{cfg.kavenegar_base_url.rstrip('/')}/{cfg.kavenegar_api_key}/verify/lookup.json"
    params = {"receptor": phone, "token": code, "template": cfg.kavenegar_template}
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            resp = await client.get(url, params=params)
        body = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        log.error("sms.send_failed", phone=phone, error=str(exc))
        return False

    ret = (body.get("return") if isinstance(body, dict) else None) or {}
    if ret.get("status") != 200:
        log.error("sms.rejected", phone=phone, status=ret.get("status"), message=ret.get("message"))
        return False
    log.info("sms.sent", phone=phone)
    return True
