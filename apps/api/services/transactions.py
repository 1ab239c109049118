"""Transaction recorder: converts credit spends into cash owed to providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.transaction import Transaction

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_cents(value: Any) -> Decimal:
    """Normalize a float/str/Decimal money value to two decimal places."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CashSplit:
    amount_cash: Decimal
    platform_fee: Decimal
    provider_amount: Decimal


def compute_cash_split(
    amount_credits: int,
    *,
    credit_rate: Optional[Decimal] = None,
    fee_rate: Optional[Decimal] = None,
) -> CashSplit:
    rate = Decimal(str(credit_rate if credit_rate is not None else settings.CREDIT_TO_CASH_RATE))
    fee = Decimal(str(fee_rate if fee_rate is not None else settings.PLATFORM_FEE_RATE))
    return split_cash_amount(Decimal(int(amount_credits)) * rate, fee_rate=fee)


def split_cash_amount(amount_cash: Any, *, fee_rate: Optional[Decimal] = None) -> CashSplit:
    """Split a cash amount paid directly (no credits involved)."""
    fee = Decimal(str(fee_rate if fee_rate is not None else settings.PLATFORM_FEE_RATE))
    gross = to_cents(amount_cash)
    platform_fee = to_cents(gross * fee)
    return CashSplit(
        amount_cash=gross,
        platform_fee=platform_fee,
        provider_amount=gross - platform_fee,
    )


async def record_transaction(
    db: AsyncSession,
    *,
    transaction_type: str,
    amount_credits: int,
    provider_id: str,
    client_id: str,
    listing_id: Optional[str] = None,
    content_item_id: Optional[str] = None,
    amount_cash: Any = None,
) -> Transaction:
    """Add an unpaid Transaction to the session (caller commits).

    ``amount_cash`` is given for value paid in cash, such as contest entries;
    otherwise the cash value is derived from ``amount_credits``.
    """
    if amount_cash is not None:
        split = split_cash_amount(amount_cash)
    else:
        split = compute_cash_split(amount_credits)
    transaction = Transaction(
        type=transaction_type,
        amount_credits=int(amount_credits),
        amount_cash=split.amount_cash,
        platform_fee=split.platform_fee,
        provider_amount=split.provider_amount,
        provider_id=provider_id,
        client_id=client_id,
        listing_id=listing_id,
        content_item_id=content_item_id,
        payout_request_id=None,
    )
    db.add(transaction)
    await db.flush()
    logger.info(
        "Recorded %s transaction=%s provider=%s client=%s cash=%s fee=%s",
        transaction_type,
        transaction.id,
        provider_id,
        client_id,
        split.amount_cash,
        split.platform_fee,
    )
    return transaction


def serialize_transaction(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "type": transaction.type,
        "amountCredits": transaction.amount_credits,
        "amountCash": float(to_cents(transaction.amount_cash)),
        "platformFee": float(to_cents(transaction.platform_fee)),
        "providerAmount": float(to_cents(transaction.provider_amount)),
        "providerId": transaction.provider_id,
        "clientId": transaction.client_id,
        "listingId": transaction.listing_id,
        "contentItemId": transaction.content_item_id,
        "payoutRequestId": transaction.payout_request_id,
        "createdAt": transaction.created_at.isoformat() if transaction.created_at else None,
    }
