"""Contest (raffle) lifecycle: creation, paid entry, resolution."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from config import settings
from database import utcnow
from models.contest import CONTEST_OPEN, CONTEST_RESOLVED, Contest, ContestEntry
from models.forum import ForumThread
from models.transaction import TRANSACTION_CONTEST_ENTRY
from models.user import User
from services.errors import InvalidState, NotFound, Unauthorized, UpstreamFailure, ValidationError
from services.transactions import record_transaction

logger = logging.getLogger(__name__)

CONTEST_ENTRY_TYPE = "contest_entry"
CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
MIN_SLOTS, MAX_SLOTS = 1, 1000
MIN_SLOT_PRICE, MAX_SLOT_PRICE = 0.01, 1000.0


class WebhookSignatureError(ValueError):
    """Stripe-Signature header is missing or does not match the payload."""


def verify_stripe_event(payload: bytes, signature: Optional[str], secret: Optional[str] = None) -> Dict[str, Any]:
    """Verify a Stripe webhook and return the decoded event."""
    webhook_secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
    if not webhook_secret:
        raise UpstreamFailure("Webhook not configured", status_code=503)
    if not signature:
        raise WebhookSignatureError("No signature")

    try:
        event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
    except stripe.SignatureVerificationError as exc:
        raise WebhookSignatureError(f"Webhook Error: {exc}") from exc
    except (ValueError, TypeError, AttributeError) as exc:
        raise WebhookSignatureError("Webhook Error: invalid payload") from exc
    return event.to_dict()


def _validate_contest_fields(title: Any, prize_description: Any, total_slots: Any, slot_price: Any):
    if not title or not prize_description or not total_slots or not slot_price:
        raise ValidationError("Missing required fields: title, prizeDescription, totalSlots, slotPrice")
    try:
        slots = int(total_slots)
        price = float(slot_price)
    except (TypeError, ValueError) as exc:
        raise ValidationError("totalSlots and slotPrice must be numeric") from exc
    if not MIN_SLOTS <= slots <= MAX_SLOTS:
        raise ValidationError(f"Total slots must be between {MIN_SLOTS} and {MAX_SLOTS}")
    if not MIN_SLOT_PRICE <= price <= MAX_SLOT_PRICE:
        raise ValidationError("Slot price must be between €0.01 and €1000")
    return str(title).strip(), str(prize_description).strip(), slots, price


async def create_contest(
    creator_id: str,
    db: AsyncSession,
    *,
    title: Any,
    prize_description: Any,
    total_slots: Any,
    slot_price: Any,
    thread_id: Optional[str] = None,
) -> Contest:
    clean_title, clean_prize, slots, price = _validate_contest_fields(title, prize_description, total_slots, slot_price)
    if thread_id:
        thread = await db.execute(select(ForumThread.id).where(ForumThread.id == thread_id))
        if thread.scalar_one_or_none() is None:
            raise NotFound("Thread not found")

    contest = Contest(
        title=clean_title,
        prize_description=clean_prize,
        total_slots=slots,
        slot_price=price,
        creator_id=creator_id,
        thread_id=thread_id or None,
        status=CONTEST_OPEN,
        entries_count=0,
    )
    db.add(contest)
    await db.commit()
    logger.info("Contest created id=%s creator=%s slots=%s price=%s", contest.id, creator_id, slots, price)
    return contest


async def get_contest(contest_id: str, db: AsyncSession, *, with_entries: bool = False) -> Contest:
    query = (
        select(Contest)
        .where(Contest.id == contest_id)
        .options(selectinload(Contest.creator))
        .execution_options(populate_existing=True)
    )
    if with_entries:
        query = query.options(selectinload(Contest.entries).selectinload(ContestEntry.participant))
    result = await db.execute(query)
    contest = result.scalar_one_or_none()
    if not contest:
        raise NotFound("Contest not found")
    return contest


async def list_open_contests(db: AsyncSession) -> List[Contest]:
    result = await db.execute(
        select(Contest)
        .where(Contest.status == CONTEST_OPEN)
        .options(selectinload(Contest.creator))
        .order_by(Contest.created_at.desc())
    )
    return list(result.scalars().all())


async def list_creator_contests(creator_id: str, db: AsyncSession) -> List[Contest]:
    result = await db.execute(
        select(Contest)
        .where(Contest.creator_id == creator_id)
        .options(selectinload(Contest.creator))
        .order_by(Contest.created_at.desc())
    )
    return list(result.scalars().all())


async def _find_entry(contest_id: str, participant_id: str, db: AsyncSession) -> Optional[ContestEntry]:
    result = await db.execute(
        select(ContestEntry).where(
            ContestEntry.contest_id == contest_id,
            ContestEntry.participant_id == participant_id,
        )
    )
    return result.scalar_one_or_none()


def create_stripe_checkout_session(**params: Any) -> Any:
    return stripe.checkout.Session.create(api_key=settings.STRIPE_SECRET_KEY, **params)


async def start_entry_checkout(
    contest_id: str,
    db: AsyncSession,
    *,
    participant_id: str,
    participant_email: Optional[str],
) -> Dict[str, Any]:
    """Open a Stripe checkout for one slot; the entry is created by the webhook."""
    if not settings.STRIPE_SECRET_KEY:
        raise UpstreamFailure("Payment system not configured", status_code=503)

    contest = await get_contest(contest_id, db)
    if contest.status != CONTEST_OPEN:
        raise InvalidState("Contest is not open for entries")
    if contest.entries_count >= contest.total_slots:
        raise InvalidState("All slots are sold out")
    if await _find_entry(contest_id, participant_id, db):
        raise ValidationError("You have already entered this contest")

    base_url = settings.PUBLIC_BASE_URL.rstrip("/")
    try:
        session = await asyncio.to_thread(
            create_stripe_checkout_session,
            mode="payment",
            payment_method_types=["card"],
            customer_email=participant_email or None,
            line_items=[
                {
                    "price_data": {
                        "currency": "eur",
                        "product_data": {
                            "name": f"Contest Entry: {contest.title}",
                            "description": f"Entry slot for {contest.prize_description}",
                        },
                        "unit_amount": int(round(contest.slot_price * 100)),
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{base_url}/contests/{contest_id}?success=1",
            cancel_url=f"{base_url}/contests/{contest_id}?canceled=1",
            metadata={
                "contestId": contest.id,
                "participantId": participant_id,
                "type": CONTEST_ENTRY_TYPE,
            },
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout failed for contest=%s: %s", contest_id, exc)
        raise UpstreamFailure("Payment processing failed") from exc

    logger.info("Contest checkout started contest=%s participant=%s session=%s", contest_id, participant_id, session.id)
    return {"url": session.url, "sessionId": session.id}


async def record_contest_entry(
    db: AsyncSession,
    *,
    contest_id: str,
    participant_id: str,
    amount_paid: float,
    checkout_session_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Insert at most one entry per participant and never beyond total_slots.

    Returns ``created``, ``duplicate``, ``closed`` or ``full``. Business
    rejections are returned, not raised, because the caller is a webhook.
    """
    if await _find_entry(contest_id, participant_id, db):
        logger.info("Contest entry contest=%s participant=%s already exists, skipping", contest_id, participant_id)
        return "duplicate"

    claimed = await db.execute(
        update(Contest)
        .where(
            Contest.id == contest_id,
            Contest.status == CONTEST_OPEN,
            Contest.entries_count < Contest.total_slots,
        )
        .values(entries_count=Contest.entries_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        await db.rollback()
        contest_result = await db.execute(select(Contest).where(Contest.id == contest_id))
        contest = contest_result.scalar_one_or_none()
        outcome = "full" if contest and contest.status == CONTEST_OPEN else "closed"
        logger.warning("Contest entry dropped contest=%s participant=%s reason=%s", contest_id, participant_id, outcome)
        return outcome

    entry = ContestEntry(
        contest_id=contest_id,
        participant_id=participant_id,
        entry_fee_paid=float(amount_paid or 0),
        checkout_session_id=checkout_session_id,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("Concurrent duplicate entry contest=%s participant=%s", contest_id, participant_id)
        return "duplicate"

    contest_result = await db.execute(
        select(Contest.creator_id, Contest.entries_count, Contest.total_slots).where(Contest.id == contest_id)
    )
    creator_id, entries_count, total_slots = contest_result.one()
    if amount_paid:
        await record_transaction(
            db,
            transaction_type=TRANSACTION_CONTEST_ENTRY,
            amount_credits=0,
            amount_cash=amount_paid,
            provider_id=creator_id,
            client_id=participant_id,
        )
    await db.commit()
    logger.info(
        "Contest entry created contest=%s participant=%s slots=%s/%s",
        contest_id,
        participant_id,
        entries_count,
        total_slots,
    )

    if entries_count >= total_slots:
        await resolve_contest(contest_id, db, rng=rng)
    return "created"


def _amount_from_cents(value: Any) -> Optional[float]:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value < 0 or not math.isfinite(value):
        return None
    return value / 100


async def handle_stripe_event(event: Dict[str, Any], db: AsyncSession) -> str:
    if event.get("type") != CHECKOUT_COMPLETED_EVENT:
        return "ignored"

    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        return "ignored"
    metadata = session.get("metadata")
    if not isinstance(metadata, dict) or metadata.get("type") != CONTEST_ENTRY_TYPE:
        return "ignored"
    contest_id = metadata.get("contestId")
    participant_id = metadata.get("participantId")
    if not isinstance(contest_id, str) or not isinstance(participant_id, str) or not contest_id or not participant_id:
        return "ignored"
    amount_paid = _amount_from_cents(session.get("amount_total"))
    if amount_paid is None:
        logger.warning("Contest checkout %s carries a non-numeric amount_total", session.get("id"))
        return "ignored"

    return await record_contest_entry(
        db,
        contest_id=contest_id,
        participant_id=participant_id,
        amount_paid=amount_paid,
        checkout_session_id=session.get("id") if isinstance(session.get("id"), str) else None,
    )


async def resolve_contest(
    contest_id: str,
    db: AsyncSession,
    *,
    actor: Optional[User] = None,
    actor_is_admin: bool = False,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Pick one winner uniformly at random and close the contest.

    ``actor`` is None for the automatic resolution after the last slot sells.
    """
    contest = await get_contest(contest_id, db, with_entries=True)
    if actor is not None and contest.creator_id != actor.id and not actor_is_admin:
        raise Unauthorized("Only the contest creator can resolve it")
    if contest.status != CONTEST_OPEN:
        raise InvalidState("Contest is already resolved or closed")
    entries = sorted(contest.entries, key=lambda item: item.entered_at)
    if not entries:
        raise ValidationError("Cannot resolve contest with no entries")

    winner = (rng or random).choice(entries)
    now = utcnow()
    transitioned = await db.execute(
        update(Contest)
        .where(Contest.id == contest_id, Contest.status == CONTEST_OPEN)
        .values(status=CONTEST_RESOLVED, resolved_at=now, winner_id=winner.id)
    )
    if transitioned.rowcount != 1:
        await db.rollback()
        raise InvalidState("Contest is already resolved or closed")

    winner.is_winner = True
    await db.commit()
    logger.info("Contest resolved id=%s winner_entry=%s participant=%s", contest_id, winner.id, winner.participant_id)
    return {"contest": contest, "winner": winner}


def _user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {"id": user.id, "name": user.name, "image": user.image}


def serialize_entry(entry: ContestEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "participantId": entry.participant_id,
        "participant": _user_summary(entry.participant),
        "isWinner": bool(entry.is_winner),
        "entryFeePaid": entry.entry_fee_paid,
        "enteredAt": entry.entered_at.isoformat() if entry.entered_at else None,
    }


def serialize_contest(contest: Contest, *, entries: Optional[List[ContestEntry]] = None) -> Dict[str, Any]:
    payload = {
        "id": contest.id,
        "title": contest.title,
        "prizeDescription": contest.prize_description,
        "totalSlots": contest.total_slots,
        "slotPrice": contest.slot_price,
        "slotsSold": contest.entries_count,
        "slotsRemaining": max(contest.total_slots - contest.entries_count, 0),
        "status": contest.status,
        "creatorId": contest.creator_id,
        "creator": _user_summary(contest.creator),
        "threadId": contest.thread_id,
        "winnerId": contest.winner_id,
        "resolvedAt": contest.resolved_at.isoformat() if contest.resolved_at else None,
        "createdAt": contest.created_at.isoformat() if contest.created_at else None,
    }
    if entries is not None:
        payload["entries"] = [serialize_entry(entry) for entry in entries]
    return payload
