from fastapi import APIRouter

from aihub.services.market.aggregator import fetch_snapshot

router = APIRouter(tags=["market"])


@router.get("/market", summary="Currency, gold, crypto and stock prices")
async def market():
    return await fetch_snapshot()
