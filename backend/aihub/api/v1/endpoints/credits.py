from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from aihub.api.v1.dependencies.auth import get_current_user_id
from aihub.api.v1.schemas.credits import (
    BalanceResponse,
    HistoryResponse,
    PackageOut,
    PurchaseRequest,
    PurchaseResponse,
    TransactionOut,
)
from aihub.core.config import settings
from aihub.core.errors import ApiError
from aihub.database import get_db
from aihub.services.credits import ledger
from aihub.services.credits.pricing import CREDIT_PACKAGES, find_package

router = APIRouter(prefix="/credits", tags=["credits"])
log = logging.getLogger("uvicorn.error")

MSG_INVALID_PACKAGE = "پکیج نامعتبر است"


@router.get("", response_model=BalanceResponse, response_model_by_alias=True)
async def get_credits(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return BalanceResponse(credits=await ledger.get_balance(db, user_id))


@router.get("/history", response_model=HistoryResponse, response_model_by_alias=True)
async def get_history(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rows = await ledger.list_transactions(db, user_id, limit=limit, offset=offset)
    return HistoryResponse(
        transactions=[TransactionOut.model_validate(r) for r in rows],
        limit=limit,
        offset=offset,
    )


@router.get("/packages", response_model=List[PackageOut], response_model_by_alias=True)
async def get_packages():
    return [PackageOut(**p.to_dict()) for p in CREDIT_PACKAGES]


@router.post("/purchase", response_model=PurchaseResponse, response_model_by_alias=True)
async def purchase(body: PurchaseRequest, user_id: str = Depends(get_current_user_id)):
    """
    No payment gateway is wired in: the response only names the checkout URL
    the client would be sent to. Credits are granted by the gateway callback.
    """
    package = find_package(body.package_id)
    if package is None:
        raise ApiError(400, MSG_INVALID_PACKAGE)
    log.info("credit purchase started: user=%s package=%s", user_id, package.id)
    return PurchaseResponse(
        package=PackageOut(**package.to_dict()),
        payment_url=f"{settings.app_url.rstrip('/')}/payment/{package.id}?user={user_id}",
    )
