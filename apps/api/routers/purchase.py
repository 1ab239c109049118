"""Credit-spending purchases: boosts, VOD unlocks and one-click credit packs."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.boosts import purchase_boost, serialize_boost
from services.checkout import one_click_credit_purchase
from services.content import purchase_vod
from services.payment_processor import PaymentProcessor, get_payment_processor

router = APIRouter()


class BoostPurchaseRequest(BaseModel):
    type: Optional[str] = None
    priceCredits: Optional[int] = None
    durationDays: Optional[int] = None
    listingId: Optional[str] = None
    blogPostId: Optional[str] = None
    category: Optional[str] = None


class VodPurchaseRequest(BaseModel):
    contentItemId: Optional[str] = None


class OneClickCreditsRequest(BaseModel):
    package: Optional[str] = None


@router.post("/boost")
async def purchase_boost_route(
    request: BoostPurchaseRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    result = await purchase_boost(
        auth.user_id,
        db,
        boost_type=request.type,
        price_credits=request.priceCredits or 0,
        duration_days=request.durationDays or 0,
        listing_id=request.listingId,
        blog_post_id=request.blogPostId,
        category=request.category,
    )
    return {
        "success": True,
        "boost": serialize_boost(result["boost"]),
        "remainingCredits": result["remaining_credits"],
    }


@router.post("/vod")
async def purchase_vod_route(
    request: VodPurchaseRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await purchase_vod(auth.user_id, request.contentItemId, db)


@router.post("/credits/one-click")
async def one_click_credits_route(
    request: OneClickCreditsRequest,
    _rate_limit: None = Depends(rate_limit("purchase_one_click", limit=10, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    return await one_click_credit_purchase(auth.user_id, db, processor, package_key=request.package)
