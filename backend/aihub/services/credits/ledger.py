# backend/aihub/services/credits/ledger.py
"""
Credit ledger
=============
Owns ``users.credits`` and the append-only ``credit_transactions`` log.

* the ledger is the source of truth, ``users.credits`` is its cached projection
* every balance change and its ledger row are committed together
* ``debit`` is a single conditional UPDATE (``credits >= amount``), so two
  concurrent debits can never both pass the check and drive the balance negative
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aihub.models import CreditTransaction, TransactionType, User

log = structlog.get_logger(__name__)


class LedgerError(str, enum.Enum):
    USER_NOT_FOUND = "user_not_found"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    TRANSACTION_FAILED = "transaction_failed"


@dataclass(frozen=True)
class DebitResult:
    success: bool
    error: Optional[LedgerError] = None
    balance: Optional[int] = None

    @classmethod
    def ok(cls, balance: int) -> "DebitResult":
        return cls(success=True, balance=balance)

    @classmethod
    def fail(cls, error: LedgerError) -> "DebitResult":
        return cls(success=False, error=error)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"amount must be a positive integer, got {amount!r}")


async def get_balance(db: AsyncSession, user_id: str) -> int:
    """Current balance; unknown users read as 0 instead of failing."""
    value = await db.scalar(select(User.credits).where(User.id == user_id))
    return int(value) if value is not None else 0


async def debit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    description: Optional[str] = None,
) -> DebitResult:
    _check_amount(amount)
    try:
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .returning(User.credits)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            # nothing written; end the transaction so the write lock is released
            exists = await db.scalar(select(User.id).where(User.id == user_id))
            await db.commit()
            error = LedgerError.INSUFFICIENT_CREDITS if exists else LedgerError.USER_NOT_FOUND
            log.info("ledger.debit_rejected", user_id=user_id, amount=amount, reason=error.value)
            return DebitResult.fail(error)

        db.add(
            CreditTransaction(
                user_id=user_id,
                amount=-amount,
                type=TransactionType.USAGE.value,
                description=description,
            )
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("ledger.debit_failed", user_id=user_id, amount=amount, description=description)
        return DebitResult.fail(LedgerError.TRANSACTION_FAILED)

    log.info("ledger.debit", user_id=user_id, amount=amount, balance=balance)
    return DebitResult.ok(int(balance))


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    kind: TransactionType = TransactionType.PURCHASE,
    description: Optional[str] = None,
) -> bool:
    """Atomic increment + positive ledger row. Pending work in ``db`` commits with it."""
    _check_amount(amount)
    kind = TransactionType(kind)
    if kind is TransactionType.USAGE:
        raise ValueError("usage entries are written by debit()")
    try:
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            log.warning("ledger.credit_unknown_user", user_id=user_id, amount=amount, kind=kind.value)
            return False
        db.add(
            CreditTransaction(
                user_id=user_id,
                amount=amount,
                type=kind.value,
                description=description,
            )
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("ledger.credit_failed", user_id=user_id, amount=amount, kind=kind.value)
        return False

    log.info("ledger.credit", user_id=user_id, amount=amount, kind=kind.value)
    return True


async def list_transactions(
    db: AsyncSession,
    user_id: str,
    limit: int = 20,
    offset: int = 0,
) -> List[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def ledger_total(db: AsyncSession, user_id: str) -> int:
    """Sum of all ledger rows; equals ``get_balance`` for a consistent account."""
    total = await db.scalar(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(CreditTransaction.user_id == user_id)
    )
    return int(total or 0)
