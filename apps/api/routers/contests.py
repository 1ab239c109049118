"""Contests router, including the Stripe checkout webhook."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import AdminGate, AuthContext, get_admin_gate, get_auth_context, get_current_user
from services.contests import (
    WebhookSignatureError,
    create_contest,
    get_contest,
    handle_stripe_event,
    list_creator_contests,
    list_open_contests,
    resolve_contest,
    serialize_contest,
    serialize_entry,
    start_entry_checkout,
    verify_stripe_event,
)
from services.errors import ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)


class ContestCreateRequest(BaseModel):
    title: Optional[str] = None
    prizeDescription: Optional[str] = None
    totalSlots: Any = None
    slotPrice: Any = None
    threadId: Optional[str] = None


@router.post("", status_code=201)
async def create_contest_route(
    request: ContestCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    contest = await create_contest(
        auth.user_id,
        db,
        title=request.title,
        prize_description=request.prizeDescription,
        total_slots=request.totalSlots,
        slot_price=request.slotPrice,
        thread_id=request.threadId,
    )
    contest = await get_contest(contest.id, db)
    return {"success": True, "contest": serialize_contest(contest)}


@router.get("")
async def list_contests_route(db: AsyncSession = Depends(get_db)):
    contests = await list_open_contests(db)
    return {"contests": [serialize_contest(contest) for contest in contests]}


@router.post("/webhook")
async def contest_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Stripe delivery endpoint; only the signature can make it fail."""
    body = await request.body()
    try:
        event = verify_stripe_event(body, request.headers.get("stripe-signature"))
    except WebhookSignatureError as exc:
        logger.warning("Contest webhook rejected: %s", exc)
        raise ValidationError(str(exc)) from exc

    try:
        outcome = await handle_stripe_event(event, db)
    except (HTTPException, SQLAlchemyError, ValueError, TypeError, AttributeError) as exc:
        await db.rollback()
        logger.error("Contest webhook processing failed event=%s: %s", event.get("id"), exc)
        outcome = "failed"

    logger.info("Contest webhook event=%s type=%s outcome=%s", event.get("id"), event.get("type"), outcome)
    return {"received": True}


@router.get("/creator/{creator_id}")
async def creator_contests_route(creator_id: str, db: AsyncSession = Depends(get_db)):
    contests = await list_creator_contests(creator_id, db)
    return {"contests": [serialize_contest(contest) for contest in contests]}


@router.get("/{contest_id}")
async def get_contest_route(contest_id: str, db: AsyncSession = Depends(get_db)):
    contest = await get_contest(contest_id, db, with_entries=True)
    entries = sorted(contest.entries, key=lambda entry: entry.entered_at)
    return serialize_contest(contest, entries=entries)


@router.post("/{contest_id}/enter")
async def enter_contest_route(
    contest_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await start_entry_checkout(
        contest_id,
        db,
        participant_id=auth.user_id,
        participant_email=auth.email,
    )


@router.post("/{contest_id}/resolve")
async def resolve_contest_route(
    contest_id: str,
    user: User = Depends(get_current_user),
    gate: AdminGate = Depends(get_admin_gate),
    db: AsyncSession = Depends(get_db),
):
    result = await resolve_contest(
        contest_id,
        db,
        actor=user,
        actor_is_admin=gate.is_admin(user.role, user.email),
    )
    return {
        "success": True,
        "contest": serialize_contest(result["contest"]),
        "winner": serialize_entry(result["winner"]),
    }
