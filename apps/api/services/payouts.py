"""Payout aggregation: provider balances and the payout request lifecycle.

A provider's spendable balance is the cash value of their Transactions that
are not attached to any PayoutRequest. Requesting a payout attaches a
first-fit subset of those rows; rejecting the request detaches them again.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import utcnow
from models.payout_request import (
    PAYOUT_COMPLETED,
    PAYOUT_REJECTED,
    PAYOUT_REQUESTED,
    PayoutRequest,
)
from models.transaction import Transaction
from services.errors import InvalidState, NotFound, ValidationError
from services.transactions import to_cents

logger = logging.getLogger(__name__)


def select_first_fit(transactions: Sequence[Transaction], amount: Decimal) -> List[Transaction]:
    """Walk rows in order, taking each one that still fits in the remainder.

    The chosen subset never sums above ``amount`` but may sum below it when
    no combination of the remaining rows fits exactly.
    """
    remaining = to_cents(amount)
    chosen: List[Transaction] = []
    for transaction in transactions:
        if remaining <= 0:
            break
        cash = to_cents(transaction.amount_cash)
        if cash <= remaining:
            chosen.append(transaction)
            remaining -= cash
    return chosen


async def _unpaid_transactions(provider_id: str, db: AsyncSession) -> List[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.provider_id == provider_id, Transaction.payout_request_id.is_(None))
        .order_by(Transaction.created_at.asc(), Transaction.id.asc())
    )
    return list(result.scalars().all())


async def get_available_balance(provider_id: str, db: AsyncSession) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount_cash), 0)).where(
            Transaction.provider_id == provider_id,
            Transaction.payout_request_id.is_(None),
        )
    )
    return to_cents(result.scalar() or 0)


async def _get_payout(request_id: str, db: AsyncSession) -> PayoutRequest:
    result = await db.execute(select(PayoutRequest).where(PayoutRequest.id == request_id))
    payout = result.scalar_one_or_none()
    if not payout:
        raise NotFound("Payout request not found")
    return payout


async def request_payout(
    provider_id: str,
    db: AsyncSession,
    *,
    amount: Any,
    payout_method: Optional[str] = None,
    payout_details: Optional[str] = None,
) -> PayoutRequest:
    """Create a REQUESTED payout and attach unpaid transactions to it."""
    requested = to_cents(amount)
    if requested <= 0:
        raise ValidationError("Invalid amount")

    available = await get_available_balance(provider_id, db)
    if requested > available:
        raise ValidationError("Insufficient balance")

    chosen = select_first_fit(await _unpaid_transactions(provider_id, db), requested)
    attached_amount = sum((to_cents(t.amount_cash) for t in chosen), Decimal("0.00"))
    if not chosen:
        raise ValidationError("No unpaid transactions fit within the requested amount")

    payout = PayoutRequest(
        provider_id=provider_id,
        amount=requested,
        attached_amount=attached_amount,
        payout_method=payout_method,
        payout_details=payout_details or "",
        status=PAYOUT_REQUESTED,
    )
    db.add(payout)
    await db.flush()

    chosen_ids = [t.id for t in chosen]
    result = await db.execute(
        update(Transaction)
        .where(Transaction.id.in_(chosen_ids), Transaction.payout_request_id.is_(None))
        .values(payout_request_id=payout.id)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != len(chosen_ids):
        await db.rollback()
        raise InvalidState("Transactions were claimed by a concurrent payout request; retry")

    await db.commit()
    logger.info(
        "Payout requested id=%s provider=%s amount=%s attached=%s transactions=%s",
        payout.id,
        provider_id,
        requested,
        attached_amount,
        len(chosen_ids),
    )
    return payout


async def _transition(
    request_id: str,
    db: AsyncSession,
    *,
    status: str,
    admin_id: Optional[str],
    rejection_reason: Optional[str] = None,
) -> PayoutRequest:
    """Move a REQUESTED payout to a terminal status exactly once."""
    values: Dict[str, Any] = {
        "status": status,
        "processed_at": utcnow(),
        "processed_by": admin_id,
    }
    if rejection_reason is not None:
        values["rejection_reason"] = rejection_reason

    result = await db.execute(
        update(PayoutRequest)
        .where(PayoutRequest.id == request_id, PayoutRequest.status == PAYOUT_REQUESTED)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidState("Payout request is not in REQUESTED status")
    return await _get_payout(request_id, db)


async def approve_payout(request_id: str, db: AsyncSession, *, admin_id: Optional[str]) -> PayoutRequest:
    payout = await _get_payout(request_id, db)
    if payout.status != PAYOUT_REQUESTED:
        raise InvalidState("Payout request is not in REQUESTED status")

    payout = await _transition(request_id, db, status=PAYOUT_COMPLETED, admin_id=admin_id)
    await db.commit()
    logger.info("Payout approved id=%s admin=%s", request_id, admin_id)
    return payout


async def reject_payout(
    request_id: str,
    db: AsyncSession,
    *,
    reason: Optional[str],
    admin_id: Optional[str],
) -> PayoutRequest:
    """Detach every transaction of the request and mark it REJECTED."""
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise ValidationError("Rejection reason is required")

    payout = await _get_payout(request_id, db)
    if payout.status != PAYOUT_REQUESTED:
        raise InvalidState("Payout request is not in REQUESTED status")

    payout = await _transition(
        request_id,
        db,
        status=PAYOUT_REJECTED,
        admin_id=admin_id,
        rejection_reason=cleaned_reason,
    )
    detached = await db.execute(
        update(Transaction)
        .where(Transaction.payout_request_id == request_id)
        .values(payout_request_id=None)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()
    logger.info(
        "Payout rejected id=%s admin=%s detached=%s reason=%s",
        request_id,
        admin_id,
        detached.rowcount,
        cleaned_reason,
    )
    return payout


async def list_provider_payouts(provider_id: str, db: AsyncSession) -> List[PayoutRequest]:
    result = await db.execute(
        select(PayoutRequest)
        .where(PayoutRequest.provider_id == provider_id)
        .order_by(PayoutRequest.requested_at.desc())
    )
    return list(result.scalars().all())


async def list_payouts(db: AsyncSession, *, status: Optional[str] = None) -> List[PayoutRequest]:
    query = select(PayoutRequest).order_by(PayoutRequest.requested_at.desc())
    if status:
        query = query.where(PayoutRequest.status == status.upper())
    result = await db.execute(query)
    return list(result.scalars().all())


async def _sum_payouts(db: AsyncSession, *conditions) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(PayoutRequest.amount), 0)).where(*conditions)
    )
    return to_cents(result.scalar() or 0)


async def get_earnings_summary(provider_id: str, db: AsyncSession) -> Dict[str, Any]:
    current_balance = await get_available_balance(provider_id, db)

    lifetime = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount_cash), 0)).where(Transaction.provider_id == provider_id)
    )
    pending = await _sum_payouts(
        db,
        PayoutRequest.provider_id == provider_id,
        PayoutRequest.status == PAYOUT_REQUESTED,
    )
    last_completed = await db.execute(
        select(PayoutRequest.processed_at)
        .where(PayoutRequest.provider_id == provider_id, PayoutRequest.status == PAYOUT_COMPLETED)
        .order_by(PayoutRequest.processed_at.desc())
        .limit(1)
    )
    last_payout_at = last_completed.scalar_one_or_none()
    return {
        "currentBalance": float(current_balance),
        "totalLifetimeEarnings": float(to_cents(lifetime.scalar() or 0)),
        "pendingPayouts": float(pending),
        "lastPayoutDate": last_payout_at.isoformat() if last_payout_at else None,
    }


async def get_payout_summary(db: AsyncSession) -> Dict[str, Any]:
    fees = await db.execute(select(func.coalesce(func.sum(Transaction.platform_fee), 0)))
    return {
        "totalPending": float(await _sum_payouts(db, PayoutRequest.status == PAYOUT_REQUESTED)),
        "totalCompleted": float(await _sum_payouts(db, PayoutRequest.status == PAYOUT_COMPLETED)),
        "totalRejected": float(await _sum_payouts(db, PayoutRequest.status == PAYOUT_REJECTED)),
        "totalPlatformFees": float(to_cents(fees.scalar() or 0)),
    }


def serialize_payout(payout: PayoutRequest) -> Dict[str, Any]:
    return {
        "id": payout.id,
        "providerId": payout.provider_id,
        "amount": float(to_cents(payout.amount)),
        "attachedAmount": float(to_cents(payout.attached_amount)),
        "payoutMethod": payout.payout_method,
        "payoutDetails": payout.payout_details,
        "status": payout.status,
        "requestedAt": payout.requested_at.isoformat() if payout.requested_at else None,
        "processedAt": payout.processed_at.isoformat() if payout.processed_at else None,
        "processedBy": payout.processed_by,
        "rejectionReason": payout.rejection_reason,
    }
