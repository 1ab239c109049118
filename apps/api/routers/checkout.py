"""Checkout initiators for credit packs, Pro plans and turbo boosts."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_optional_auth_context
from routers.rate_limit import rate_limit
from services.checkout import start_credit_checkout, start_pro_checkout, start_turbo_checkout
from services.payment_processor import PaymentProcessor, get_payment_processor

router = APIRouter()


class CreditCheckoutRequest(BaseModel):
    package: Optional[str] = None
    email: Optional[str] = None


class ProCheckoutRequest(BaseModel):
    plan: Optional[str] = None
    email: Optional[str] = None


class TurboCheckoutRequest(BaseModel):
    type: Optional[str] = None
    email: Optional[str] = None
    listingId: Optional[str] = None


def _user_id(auth: Optional[AuthContext]) -> Optional[str]:
    return auth.user_id if auth else None


@router.post("/credits")
async def checkout_credits(
    request: CreditCheckoutRequest,
    _rate_limit: None = Depends(rate_limit("checkout", limit=30, window_seconds=3600)),
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    return await start_credit_checkout(
        db,
        processor,
        package_key=request.package,
        user_id=_user_id(auth),
        email=request.email,
    )


@router.post("/pro")
async def checkout_pro(
    request: ProCheckoutRequest,
    _rate_limit: None = Depends(rate_limit("checkout", limit=30, window_seconds=3600)),
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    return await start_pro_checkout(
        db,
        processor,
        plan_key=request.plan,
        user_id=_user_id(auth),
        email=request.email,
    )


@router.post("/turbo")
async def checkout_turbo(
    request: TurboCheckoutRequest,
    _rate_limit: None = Depends(rate_limit("checkout", limit=30, window_seconds=3600)),
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    return await start_turbo_checkout(
        db,
        processor,
        turbo_key=request.type,
        user_id=_user_id(auth),
        email=request.email,
        listing_id=request.listingId,
    )
