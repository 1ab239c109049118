"""Listings and their moderation lifecycle."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from database import utcnow
from models.listing import LISTING_ACTIVE, LISTING_INACTIVE, LISTING_PENDING, Listing
from models.user import User
from services.email import notify_admins_of_pending_listing
from services.errors import InvalidState, NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "city", "description", "price")


def _validate_price(price: Any) -> Optional[float]:
    if price is None:
        return None
    try:
        value = float(price)
    except (TypeError, ValueError) as exc:
        raise ValidationError("price must be numeric") from exc
    if value < 0:
        raise ValidationError("price must not be negative")
    return value


async def create_listing(
    owner: User,
    db: AsyncSession,
    *,
    title: Optional[str],
    city: Optional[str],
    description: Optional[str],
    price: Any = None,
) -> Listing:
    if not (title or "").strip() or not (city or "").strip() or not (description or "").strip():
        raise ValidationError("Missing required fields: title, city, description")

    listing = Listing(
        user_id=owner.id,
        title=title.strip(),
        city=city.strip(),
        description=description.strip(),
        price=_validate_price(price),
        status=LISTING_PENDING,
        boosts=[],
    )
    db.add(listing)
    await db.commit()
    logger.info("Listing created id=%s owner=%s", listing.id, owner.id)

    await notify_admins_of_pending_listing(listing.id, listing.title, owner.email)
    return listing


async def get_listing(listing_id: str, db: AsyncSession) -> Listing:
    result = await db.execute(
        select(Listing).where(Listing.id == listing_id).options(selectinload(Listing.boosts))
    )
    listing = result.scalar_one_or_none()
    if not listing:
        raise NotFound("Listing not found")
    return listing


async def update_listing(listing_id: str, owner_id: str, db: AsyncSession, changes: Dict[str, Any]) -> Listing:
    """Apply owner edits; an ACTIVE listing goes back to moderation."""
    listing = await get_listing(listing_id, db)
    if listing.user_id != owner_id:
        raise Unauthorized("Listing not found or unauthorized")

    for field in EDITABLE_FIELDS:
        if field not in changes or changes[field] is None:
            continue
        value = changes[field]
        if field == "price":
            value = _validate_price(value)
        elif not str(value).strip():
            raise ValidationError(f"{field} must not be empty")
        else:
            value = str(value).strip()
        setattr(listing, field, value)

    if listing.status == LISTING_ACTIVE:
        listing.status = LISTING_PENDING
    await db.commit()
    logger.info("Listing updated id=%s status=%s", listing.id, listing.status)
    return listing


async def list_active_listings(db: AsyncSession, *, city: Optional[str] = None) -> List[Listing]:
    """Active listings, those with a live boost first, then newest."""
    query = (
        select(Listing)
        .where(Listing.status == LISTING_ACTIVE)
        .options(selectinload(Listing.boosts))
        .order_by(Listing.created_at.desc())
    )
    if city:
        query = query.where(Listing.city == city)
    result = await db.execute(query)
    listings = list(result.scalars().all())

    now = utcnow()
    return sorted(listings, key=lambda listing: not any(boost.is_live(now) for boost in listing.boosts))


async def list_listings(db: AsyncSession, *, status: Optional[str] = None) -> List[Listing]:
    query = select(Listing).options(selectinload(Listing.boosts)).order_by(Listing.created_at.desc())
    if status:
        query = query.where(Listing.status == status.upper())
    result = await db.execute(query)
    return list(result.scalars().all())


async def approve_listing(listing_id: str, db: AsyncSession) -> Listing:
    listing = await get_listing(listing_id, db)
    if listing.status != LISTING_PENDING:
        raise InvalidState("Only pending listings can be approved")
    listing.status = LISTING_ACTIVE
    return listing


async def reject_listing(listing_id: str, db: AsyncSession) -> Listing:
    listing = await get_listing(listing_id, db)
    if listing.status == LISTING_INACTIVE:
        raise InvalidState("Listing is already inactive")
    listing.status = LISTING_INACTIVE
    return listing


def serialize_listing(listing: Listing) -> Dict[str, Any]:
    now = utcnow()
    return {
        "id": listing.id,
        "userId": listing.user_id,
        "title": listing.title,
        "city": listing.city,
        "description": listing.description,
        "price": listing.price,
        "status": listing.status,
        "boosted": any(boost.is_live(now) for boost in listing.boosts),
        "createdAt": listing.created_at.isoformat() if listing.created_at else None,
        "updatedAt": listing.updated_at.isoformat() if listing.updated_at else None,
    }
