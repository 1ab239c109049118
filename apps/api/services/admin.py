"""Admin back-office operations and the admin audit trail."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.admin_audit_log import AdminAuditLog
from models.contest import CONTEST_OPEN, Contest
from models.listing import LISTING_ACTIVE, LISTING_PENDING, Listing
from models.payout_request import PAYOUT_REQUESTED, PayoutRequest
from models.profile import Profile
from models.user import ROLE_ADMIN, ROLE_FLAG_FIELDS, User
from services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def record_admin_action(
    db: AsyncSession,
    *,
    admin_id: Optional[str],
    admin_email: Optional[str],
    action: str,
    target_type: str,
    target_id: str,
    details: Optional[Dict[str, Any]] = None,
) -> AdminAuditLog:
    """Stage an audit row in the caller's transaction."""
    entry = AdminAuditLog(
        admin_id=admin_id,
        admin_email=admin_email,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details_json=details or {},
    )
    db.add(entry)
    logger.info("Admin action %s on %s=%s by %s", action, target_type, target_id, admin_email or admin_id)
    return entry


async def list_audit_logs(
    db: AsyncSession,
    *,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    limit: int = 100,
) -> List[AdminAuditLog]:
    query = select(AdminAuditLog).order_by(AdminAuditLog.created_at.desc()).limit(max(1, min(limit, 500)))
    if action:
        query = query.where(AdminAuditLog.action == action)
    if target_type:
        query = query.where(AdminAuditLog.target_type == target_type)
    result = await db.execute(query)
    return list(result.scalars().all())


def serialize_audit_log(entry: AdminAuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "adminId": entry.admin_id,
        "adminEmail": entry.admin_email,
        "action": entry.action,
        "targetType": entry.target_type,
        "targetId": entry.target_id,
        "details": entry.details_json or {},
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


async def get_stats(db: AsyncSession) -> Dict[str, Any]:
    users = await db.execute(select(func.count(User.id)))
    listings = await db.execute(select(Listing.status, func.count(Listing.id)).group_by(Listing.status))
    open_contests = await db.execute(select(func.count(Contest.id)).where(Contest.status == CONTEST_OPEN))
    pending_payouts = await db.execute(
        select(func.count(PayoutRequest.id)).where(PayoutRequest.status == PAYOUT_REQUESTED)
    )
    return {
        "totalUsers": int(users.scalar() or 0),
        "listingsByStatus": {status: int(count) for status, count in listings.all()},
        "openContests": int(open_contests.scalar() or 0),
        "pendingPayouts": int(pending_payouts.scalar() or 0),
    }


async def get_reports(db: AsyncSession) -> Dict[str, Any]:
    """Totals for the reports screen: users by role and listings by status."""
    users = await db.execute(select(func.count(User.id)))
    profiles = await db.execute(select(func.count(Profile.id)))
    by_role = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
    by_status = await db.execute(select(Listing.status, func.count(Listing.id)).group_by(Listing.status))
    account_types = await db.execute(
        select(
            func.count(User.id).filter(User.is_client.is_(True)),
            func.count(User.id).filter(User.is_content_creator.is_(True)),
            func.count(User.id).filter(User.is_service_provider.is_(True)),
        )
    )
    clients, creators, providers = account_types.one()

    listings_by_status = {status: int(count) for status, count in by_status.all()}
    return {
        "totalUsers": int(users.scalar() or 0),
        "totalProfiles": int(profiles.scalar() or 0),
        "totalListings": sum(listings_by_status.values()),
        "activeListings": listings_by_status.get(LISTING_ACTIVE, 0),
        "pendingListings": listings_by_status.get(LISTING_PENDING, 0),
        "usersByRole": {role: int(count) for role, count in by_role.all()},
        "usersByAccountType": {
            "isClient": int(clients or 0),
            "isContentCreator": int(creators or 0),
            "isServiceProvider": int(providers or 0),
        },
        "listingsByStatus": listings_by_status,
    }


async def list_users(db: AsyncSession, *, limit: int = 100, offset: int = 0) -> List[User]:
    result = await db.execute(
        select(User).order_by(User.created_at.desc()).offset(max(offset, 0)).limit(max(1, min(limit, 500)))
    )
    return list(result.scalars().all())


async def _get_user(user_id: str, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


async def toggle_role_flag(user_id: str, db: AsyncSession, *, role_flag: Optional[str], value: Any) -> User:
    """Set one of the independently stored role flags."""
    if role_flag not in ROLE_FLAG_FIELDS:
        raise ValidationError(f"Unknown roleFlag. Expected one of: {', '.join(ROLE_FLAG_FIELDS)}")
    if not isinstance(value, bool):
        raise ValidationError("value must be a boolean")

    user = await _get_user(user_id, db)
    _, flag = ROLE_FLAG_FIELDS[role_flag]
    user.set_role_flag(flag, value)
    return user


async def make_admin(user_id: str, db: AsyncSession) -> User:
    user = await _get_user(user_id, db)
    user.role = ROLE_ADMIN
    return user
