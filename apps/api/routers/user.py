"""Signed-in user's wallet, payouts and profile."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import RoleFlag, User
from routers.auth_scope import AuthContext, get_auth_context, get_current_user, require_capability
from services.accounts import serialize_user
from services.boosts import list_user_boosts, serialize_boost
from services.checkout import credit_package_catalog
from services.ledger import get_credit_summary
from services.payouts import (
    get_earnings_summary,
    list_provider_payouts,
    request_payout,
    serialize_payout,
)
from services.profiles import get_own_profile, serialize_profile, update_own_profile

router = APIRouter()


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    age: Any = None
    city: Optional[str] = None
    description: Optional[str] = None
    phone: Optional[str] = None


class PayoutRequestBody(BaseModel):
    amount: Any = None
    payoutMethod: Optional[str] = None
    payoutDetails: Optional[str] = None


@router.get("/credit-packages")
async def credit_packages():
    return {"packages": credit_package_catalog()}


@router.get("/user/credits")
async def user_credits(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_credit_summary(auth.user_id, db)


@router.get("/user/boosts")
async def user_boosts(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    boosts = await list_user_boosts(auth.user_id, db)
    return {"boosts": [serialize_boost(boost) for boost in boosts]}


@router.get("/user/earnings")
async def user_earnings(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_earnings_summary(auth.user_id, db)


@router.get("/user/payouts")
async def user_payouts(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    payouts = await list_provider_payouts(auth.user_id, db)
    return {"payouts": [serialize_payout(payout) for payout in payouts]}


@router.post("/user/payouts/request", status_code=201)
async def user_request_payout(
    body: PayoutRequestBody,
    user: User = Depends(require_capability(RoleFlag.SERVICE_PROVIDER, RoleFlag.CONTENT_CREATOR)),
    db: AsyncSession = Depends(get_db),
):
    payout = await request_payout(
        user.id,
        db,
        amount=body.amount,
        payout_method=body.payoutMethod,
        payout_details=body.payoutDetails,
    )
    return {"success": True, "payout": serialize_payout(payout)}


@router.get("/user/profile")
async def user_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    own = await get_own_profile(user, db)
    return {"user": serialize_user(user), **own}


@router.put("/user/profile")
async def update_user_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await update_own_profile(user, db, request.model_dump(exclude_unset=True))
    return {"success": True, "profile": serialize_profile(profile, include_user=False)}
