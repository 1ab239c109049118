"""Payment processor webhook receiver."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.errors import ValidationError
from services.payment_processor import PaymentProcessor, get_payment_processor
from services.webhooks import reconcile_payment_event

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Payment-Signature"


@router.post("/payment")
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """Verify and reconcile one processor event.

    Anything past signature and JSON checks answers 200 so the processor
    does not redeliver events that can never succeed.
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise ValidationError("Missing signature")
    if not processor.verify_webhook(body, signature):
        logger.warning("Payment webhook rejected: invalid signature")
        raise ValidationError("Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Invalid JSON payload") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    try:
        outcome = await reconcile_payment_event(payload, db)
    except (HTTPException, SQLAlchemyError, ValueError, TypeError, AttributeError) as exc:
        await db.rollback()
        logger.error("Payment webhook reconciliation failed event=%s: %s", payload.get("type") or payload.get("event_type"), exc)
        outcome = "failed"

    logger.info("Payment webhook processed outcome=%s", outcome)
    return {"received": True}
