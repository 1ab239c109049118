"""Credit balance primitives and credit ledger accounting.

Balance changes are single conditional UPDATE statements so the
``credits >= cost`` check and the decrement cannot be separated by a
concurrent request. None of these helpers commit: the calling operation
commits once the side-effect record (Transaction, CreditTransaction,
ListingBoost) has been added to the same session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.credit_transaction import CREDIT_PURCHASE, CreditTransaction
from models.user import User
from services.errors import InsufficientCredits, NotFound, ValidationError

logger = logging.getLogger(__name__)


async def get_credit_balance(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(select(User.credits).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise NotFound("User not found")
    return int(balance)


def ensure_sufficient_credits(user: User, cost: int) -> None:
    """Fail-fast pre-check; the conditional decrement is the real guard."""
    if int(user.credits or 0) < int(cost):
        raise InsufficientCredits(
            f"Insufficient credits. Required: {int(cost)}, available: {int(user.credits or 0)}."
        )


async def debit_credits(user_id: str, cost: int, db: AsyncSession) -> int:
    """Atomically subtract ``cost`` credits; returns the new balance."""
    debit = int(cost)
    if debit <= 0:
        raise ValidationError("Debit amount must be greater than 0")

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.credits >= debit)
        .values(credits=User.credits - debit)
    )
    if result.rowcount != 1:
        balance = await db.execute(select(User.credits).where(User.id == user_id))
        available = balance.scalar_one_or_none()
        if available is None:
            raise NotFound("User not found")
        raise InsufficientCredits(
            f"Insufficient credits. Required: {debit}, available: {int(available)}."
        )

    balance_after = await get_credit_balance(user_id, db)
    logger.info("Debited %s credits from user=%s balance_after=%s", debit, user_id, balance_after)
    return balance_after


async def credit_credits(user_id: str, amount: int, db: AsyncSession) -> int:
    """Atomically add ``amount`` credits; returns the new balance."""
    grant = int(amount)
    if grant <= 0:
        raise ValidationError("Credit amount must be greater than 0")

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(credits=User.credits + grant)
    )
    if result.rowcount != 1:
        raise NotFound("User not found")

    balance_after = await get_credit_balance(user_id, db)
    logger.info("Credited %s credits to user=%s balance_after=%s", grant, user_id, balance_after)
    return balance_after


async def adjust_balance(user_id: str, delta_credits: int, db: AsyncSession) -> int:
    """Apply a signed delta through the matching conditional update."""
    delta = int(delta_credits)
    if delta < 0:
        return await debit_credits(user_id, -delta, db)
    if delta > 0:
        return await credit_credits(user_id, delta, db)
    return await get_credit_balance(user_id, db)


async def record_credit_transaction(
    user_id: str,
    db: AsyncSession,
    *,
    entry_type: str,
    amount: int,
    balance_after: Optional[int] = None,
    description: Optional[str] = None,
    external_reference: Optional[str] = None,
) -> CreditTransaction:
    entry = CreditTransaction(
        user_id=user_id,
        type=entry_type,
        amount=int(amount),
        balance_after=balance_after,
        description=description,
        external_reference=external_reference,
    )
    db.add(entry)
    await db.flush()
    return entry


async def find_credit_transaction(external_reference: str, db: AsyncSession) -> Optional[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction).where(CreditTransaction.external_reference == external_reference)
    )
    return result.scalar_one_or_none()


async def add_credit_purchase(
    user_id: str,
    db: AsyncSession,
    *,
    credits: int,
    payment_reference: str,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Grant purchased credits once per processor payment id and commit."""
    grant = int(credits)
    if grant <= 0:
        raise ValidationError("credits must be greater than 0")

    existing = await find_credit_transaction(payment_reference, db)
    if existing:
        logger.info("Credit purchase %s already applied, skipping", payment_reference)
        return {
            "applied": False,
            "credits_added": 0,
            "balance_after": await get_credit_balance(user_id, db),
        }

    balance_after = await credit_credits(user_id, grant, db)
    await record_credit_transaction(
        user_id,
        db,
        entry_type=CREDIT_PURCHASE,
        amount=grant,
        balance_after=balance_after,
        description=description or f"Purchased {grant} credits",
        external_reference=payment_reference,
    )
    await db.commit()
    return {"applied": True, "credits_added": grant, "balance_after": balance_after}


def serialize_credit_transaction(entry: CreditTransaction) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "type": entry.type,
        "amount": entry.amount,
        "balanceAfter": entry.balance_after,
        "description": entry.description,
        "externalReference": entry.external_reference,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


async def get_credit_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    balance = await get_credit_balance(user_id, db)
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc())
        .limit(30)
    )
    entries = result.scalars().all()
    return {
        "credits": balance,
        "recentTransactions": [serialize_credit_transaction(entry) for entry in entries],
    }
