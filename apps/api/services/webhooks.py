"""Reconciliation of payment-processor webhook events into local state."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import utcnow
from models.subscription import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_CANCELED, Subscription
from models.user import User
from services.boosts import grant_paid_boost
from services.checkout import PRO_PLANS, TURBO_BOOSTS
from services.crypto import encrypt_token
from services.ledger import add_credit_purchase

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENTS = {"payment.succeeded", "charge.succeeded"}
PAYMENT_FAILED_EVENTS = {"payment.failed", "charge.failed"}
PAYMENT_TOKEN_EVENTS = {"customer.created", "payment_method.saved"}
SUBSCRIPTION_UPDATE_EVENTS = {"subscription.created", "subscription.updated"}
SUBSCRIPTION_CANCEL_EVENTS = {"subscription.cancelled"}


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + int(months)
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _from_epoch(value: Any) -> Optional[datetime]:
    seconds = _to_int(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    """Coerce a processor-supplied number; None when it is not one."""
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return ""
    return str(value).strip()


def _event_type(payload: Dict[str, Any]) -> str:
    return str(payload.get("type") or payload.get("event_type") or "")


async def _user_exists(user_id: str, db: AsyncSession) -> bool:
    result = await db.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None


async def _apply_credits_purchase(payload: Dict[str, Any], metadata: Dict[str, Any], db: AsyncSession) -> str:
    user_id = _text(metadata.get("userId"))
    payment_id = _text(payload.get("payment_id"))
    credits = _to_int(metadata.get("credits")) or 0
    if not user_id or not payment_id or credits <= 0:
        return "ignored"
    if not await _user_exists(user_id, db):
        logger.warning("Credits payment %s references unknown user=%s", payment_id, user_id)
        return "ignored"

    outcome = await add_credit_purchase(
        user_id,
        db,
        credits=credits,
        payment_reference=payment_id,
        description=f"Purchased {credits} credits",
    )
    return "applied" if outcome["applied"] else "duplicate"


async def _apply_pro_subscription(payload: Dict[str, Any], metadata: Dict[str, Any], db: AsyncSession) -> str:
    user_id = _text(metadata.get("userId"))
    plan_key = _text(metadata.get("plan"))
    plan = PRO_PLANS.get(plan_key)
    if not user_id or not plan:
        return "ignored"

    user_result = await db.execute(select(User).where(User.id == user_id))
    user = user_result.scalar_one_or_none()
    if not user:
        return "ignored"

    now = utcnow()
    pro_until = add_months(now, plan["duration_months"])
    user.is_pro = True
    user.pro_until = pro_until

    external_id = _text(payload.get("subscription_id")) or _text(payload.get("payment_id")) or None
    subscription_result = await db.execute(select(Subscription).where(Subscription.user_id == user_id))
    subscription = subscription_result.scalar_one_or_none()
    if subscription:
        subscription.plan = plan_key.upper()
        subscription.status = SUBSCRIPTION_ACTIVE
        subscription.current_period_end = pro_until
        subscription.cancel_at_period_end = False
        if external_id:
            subscription.external_id = external_id
    else:
        db.add(
            Subscription(
                user_id=user_id,
                plan=plan_key.upper(),
                status=SUBSCRIPTION_ACTIVE,
                current_period_start=now,
                current_period_end=pro_until,
                external_id=external_id,
            )
        )
    await db.commit()
    logger.info("Pro plan %s activated for user=%s until=%s", plan_key, user_id, pro_until.isoformat())
    return "applied"


async def _apply_turbo_boost(payload: Dict[str, Any], metadata: Dict[str, Any], db: AsyncSession) -> str:
    payment_id = _text(payload.get("payment_id"))
    turbo = TURBO_BOOSTS.get(_text(metadata.get("turbo"))) or {}
    duration_days = _to_int(metadata.get("duration_days")) or turbo.get("duration_days") or 0
    if not payment_id or duration_days <= 0:
        return "ignored"

    boost = await grant_paid_boost(
        db,
        payment_reference=payment_id,
        boost_type=_text(metadata.get("boost_type")) or "TURBO",
        duration_days=duration_days,
        purchased_by=_text(metadata.get("userId")) or None,
        listing_id=_text(metadata.get("listing_id")) or None,
    )
    return "applied" if boost else "duplicate"


PAYMENT_HANDLERS = {
    "credits_purchase": _apply_credits_purchase,
    "pro_subscription": _apply_pro_subscription,
    "turbo_boost": _apply_turbo_boost,
}


async def _store_payment_token(payload: Dict[str, Any], db: AsyncSession) -> str:
    email = _text(payload.get("customer_email")).lower()
    token = _text(payload.get("customer_id")) or _text(payload.get("payment_method_id"))
    if not email or not token:
        return "ignored"

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        return "ignored"

    user.payment_token_encrypted = encrypt_token(token)
    user.payment_token_provider = settings.PAYMENT_PROCESSOR or "unknown"
    user.payment_token_expires_at = _from_epoch(payload.get("expires_at"))
    await db.commit()
    logger.info("Stored payment token for user=%s provider=%s", user.id, user.payment_token_provider)
    return "applied"


async def _update_subscription(payload: Dict[str, Any], db: AsyncSession, *, cancelled: bool) -> str:
    subscription_id = _text(payload.get("subscription_id"))
    if not subscription_id:
        return "ignored"

    result = await db.execute(select(Subscription).where(Subscription.external_id == subscription_id))
    subscription = result.scalar_one_or_none()
    if not subscription:
        return "ignored"

    period_end = _from_epoch(payload.get("current_period_end"))
    if period_end:
        subscription.current_period_end = period_end
    if cancelled:
        subscription.status = SUBSCRIPTION_CANCELED
        subscription.cancel_at_period_end = True
        await db.execute(
            update(User)
            .where(User.id == subscription.user_id)
            .values(pro_until=subscription.current_period_end)
        )
    else:
        subscription.status = SUBSCRIPTION_ACTIVE if payload.get("status") == "active" else SUBSCRIPTION_CANCELED
    await db.commit()
    logger.info("Subscription %s updated status=%s", subscription_id, subscription.status)
    return "applied"


async def reconcile_payment_event(payload: Dict[str, Any], db: AsyncSession) -> str:
    """Apply one verified processor event; returns a short outcome tag."""
    event_type = _event_type(payload)

    if event_type in PAYMENT_SUCCEEDED_EVENTS:
        metadata = _as_dict(payload.get("metadata"))
        handler = PAYMENT_HANDLERS.get(_text(metadata.get("type")))
        if not handler:
            logger.info("Payment event without a known purchase type: %s", metadata.get("type"))
            return "ignored"
        return await handler(payload, metadata, db)

    if event_type in PAYMENT_FAILED_EVENTS:
        logger.warning(
            "Payment failed payment=%s user=%s error=%s",
            payload.get("payment_id"),
            _as_dict(payload.get("metadata")).get("userId"),
            payload.get("error_message"),
        )
        return "logged"

    if event_type in PAYMENT_TOKEN_EVENTS:
        return await _store_payment_token(payload, db)

    if event_type in SUBSCRIPTION_UPDATE_EVENTS:
        return await _update_subscription(payload, db, cancelled=False)

    if event_type in SUBSCRIPTION_CANCEL_EVENTS:
        return await _update_subscription(payload, db, cancelled=True)

    logger.info("Unhandled webhook event type: %s", event_type)
    return "ignored"
