"""Admin back-office router. Every route sits behind the admin gate."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.listing import LISTING_PENDING
from models.user import User
from routers.auth_scope import require_admin
from services.accounts import serialize_user
from services.admin import (
    get_reports,
    get_stats,
    list_audit_logs,
    list_users,
    make_admin,
    record_admin_action,
    serialize_audit_log,
    toggle_role_flag,
)
from services.listings import approve_listing, list_listings, reject_listing, serialize_listing
from services.payouts import (
    approve_payout,
    get_payout_summary,
    list_payouts,
    reject_payout,
    serialize_payout,
)

router = APIRouter(dependencies=[Depends(require_admin)])


class ToggleRoleRequest(BaseModel):
    roleFlag: Optional[str] = None
    value: Any = None


class RejectPayoutRequest(BaseModel):
    rejectionReason: Optional[str] = None


@router.get("/check-auth")
async def check_auth(admin: User = Depends(require_admin)):
    return {"isAdmin": True, "email": admin.email}


@router.get("/stats")
async def stats(db: AsyncSession = Depends(get_db)):
    return await get_stats(db)


@router.get("/reports")
async def reports(db: AsyncSession = Depends(get_db)):
    return await get_reports(db)


@router.get("/users")
async def users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_users(db, limit=limit, offset=offset)
    return {"users": [serialize_user(user) for user in rows]}


@router.put("/users/{user_id}/toggle-role")
async def toggle_role(
    user_id: str,
    request: ToggleRoleRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await toggle_role_flag(user_id, db, role_flag=request.roleFlag, value=request.value)
    record_admin_action(
        db,
        admin_id=admin.id,
        admin_email=admin.email,
        action="TOGGLE_ROLE",
        target_type="user",
        target_id=user.id,
        details={"roleFlag": request.roleFlag, "value": request.value},
    )
    await db.commit()
    return {"success": True, "user": serialize_user(user)}


@router.put("/users/{user_id}/make-admin")
async def make_admin_route(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await make_admin(user_id, db)
    record_admin_action(
        db,
        admin_id=admin.id,
        admin_email=admin.email,
        action="MAKE_ADMIN",
        target_type="user",
        target_id=user.id,
    )
    await db.commit()
    return {"success": True, "user": serialize_user(user)}


@router.get("/audit-logs")
async def audit_logs(
    action: Optional[str] = Query(default=None),
    target_type: Optional[str] = Query(default=None, alias="targetType"),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_audit_logs(db, action=action, target_type=target_type, limit=limit)
    return {"logs": [serialize_audit_log(entry) for entry in rows]}


@router.get("/pending-listings")
async def pending_listings(db: AsyncSession = Depends(get_db)):
    rows = await list_listings(db, status=LISTING_PENDING)
    return {"listings": [serialize_listing(listing) for listing in rows]}


@router.get("/listings")
async def all_listings(
    status: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_listings(db, status=status)
    return {"listings": [serialize_listing(listing) for listing in rows]}


@router.post("/approve-listing/{listing_id}")
async def approve_listing_route(
    listing_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    listing = await approve_listing(listing_id, db)
    record_admin_action(
        db,
        admin_id=admin.id,
        admin_email=admin.email,
        action="APPROVE_LISTING",
        target_type="listing",
        target_id=listing.id,
    )
    await db.commit()
    return {"success": True, "listing": serialize_listing(listing)}


@router.post("/reject-listing/{listing_id}")
async def reject_listing_route(
    listing_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    listing = await reject_listing(listing_id, db)
    record_admin_action(
        db,
        admin_id=admin.id,
        admin_email=admin.email,
        action="REJECT_LISTING",
        target_type="listing",
        target_id=listing.id,
    )
    await db.commit()
    return {"success": True, "listing": serialize_listing(listing)}


@router.get("/payouts")
async def payouts(
    status: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_payouts(db, status=status)
    return {"payouts": [serialize_payout(payout) for payout in rows]}


@router.get("/payouts/summary")
async def payouts_summary(db: AsyncSession = Depends(get_db)):
    return await get_payout_summary(db)


@router.put("/payouts/{request_id}/approve")
async def approve_payout_route(
    request_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await approve_payout(request_id, db, admin_id=admin.id)
    record_admin_action(
        db,
        admin_id=admin.id,
        admin_email=admin.email,
        action="APPROVE_PAYOUT",
        target_type="payout_request",
        target_id=payout.id,
        details={"amount": float(payout.attached_amount or 0)},
    )
    await db.commit()
    return {"success": True, "payout": serialize_payout(payout)}


@router.put("/payouts/{request_id}/reject")
async def reject_payout_route(
    request_id: str,
    request: RejectPayoutRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await reject_payout(request_id, db, reason=request.rejectionReason, admin_id=admin.id)
    record_admin_action(
        db,
        admin_id=admin.id,
        admin_email=admin.email,
        action="REJECT_PAYOUT",
        target_type="payout_request",
        target_id=payout.id,
        details={"reason": payout.rejection_reason},
    )
    await db.commit()
    return {"success": True, "payout": serialize_payout(payout)}
