from datetime import datetime
from typing import List, Optional

from aihub.api.v1.schemas.common import CamelModel


class BalanceResponse(CamelModel):
    credits: int


class TransactionOut(CamelModel):
    id: int
    amount: int
    type: str
    description: Optional[str] = None
    created_at: datetime


class HistoryResponse(CamelModel):
    transactions: List[TransactionOut]
    limit: int
    offset: int


class PackageOut(CamelModel):
    id: str
    name: str
    credits: int
    price: int
    description: str


class PurchaseRequest(CamelModel):
    package_id: str


class PurchaseResponse(CamelModel):
    success: bool = True
    package: PackageOut
    payment_url: str
