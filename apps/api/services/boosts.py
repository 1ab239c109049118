"""Boost purchaser and boost expiry sweep."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import ensure_utc, utcnow
from models.blog_post import BlogPost
from models.credit_transaction import CREDIT_BOOST
from models.listing import Listing
from models.listing_boost import ListingBoost
from models.user import User
from services.errors import NotFound, Unauthorized, ValidationError
from services.ledger import debit_credits, ensure_sufficient_credits, record_credit_transaction

logger = logging.getLogger(__name__)

MAX_BOOST_DAYS = 365


def boost_type_for_turbo_key(key: str) -> str:
    return "SUPERTURBO" if key.startswith("superturbo") else "TURBO"


async def _ensure_owned_listing(listing_id: str, user_id: str, db: AsyncSession) -> Listing:
    result = await db.execute(select(Listing).where(Listing.id == listing_id))
    listing = result.scalar_one_or_none()
    if not listing or listing.user_id != user_id:
        raise Unauthorized("Listing not found or unauthorized")
    return listing


async def _ensure_owned_blog_post(blog_post_id: str, user_id: str, db: AsyncSession) -> BlogPost:
    result = await db.execute(select(BlogPost).where(BlogPost.id == blog_post_id))
    post = result.scalar_one_or_none()
    if not post or post.author_id != user_id:
        raise Unauthorized("Blog post not found or unauthorized")
    return post


def _boost_window(duration_days: int, now: Optional[datetime] = None):
    start = now or utcnow()
    return start, start + timedelta(days=int(duration_days))


async def purchase_boost(
    user_id: str,
    db: AsyncSession,
    *,
    boost_type: str,
    price_credits: int,
    duration_days: int,
    listing_id: Optional[str] = None,
    blog_post_id: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Debit credits and create one boost in the same commit.

    With neither a listing nor a blog post the boost targets the buyer's
    own account.
    """
    boost_type = (boost_type or "").strip().upper()
    if not boost_type:
        raise ValidationError("Missing required fields")
    if int(price_credits or 0) <= 0:
        raise ValidationError("priceCredits must be greater than 0")
    if not 0 < int(duration_days or 0) <= MAX_BOOST_DAYS:
        raise ValidationError(f"durationDays must be between 1 and {MAX_BOOST_DAYS}")
    if listing_id and blog_post_id:
        raise ValidationError("A boost targets either a listing or a blog post, not both")

    user_result = await db.execute(select(User).where(User.id == user_id))
    user = user_result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    ensure_sufficient_credits(user, price_credits)

    if listing_id:
        await _ensure_owned_listing(listing_id, user_id, db)
    if blog_post_id:
        await _ensure_owned_blog_post(blog_post_id, user_id, db)

    remaining = await debit_credits(user_id, price_credits, db)
    start, end = _boost_window(duration_days)
    boost = ListingBoost(
        type=boost_type,
        listing_id=listing_id or None,
        blog_post_id=blog_post_id or None,
        user_id=None if (listing_id or blog_post_id) else user_id,
        purchased_by=user_id,
        price_credits=int(price_credits),
        start_date=start,
        end_date=end,
        is_active=True,
        category=category or None,
    )
    db.add(boost)
    await record_credit_transaction(
        user_id,
        db,
        entry_type=CREDIT_BOOST,
        amount=-int(price_credits),
        balance_after=remaining,
        description=f"{boost_type} boost for {int(duration_days)} day(s)",
    )
    await db.commit()
    logger.info(
        "Boost purchased id=%s user=%s type=%s credits=%s until=%s",
        boost.id,
        user_id,
        boost_type,
        price_credits,
        end.isoformat(),
    )
    return {"boost": boost, "remaining_credits": remaining}


async def grant_paid_boost(
    db: AsyncSession,
    *,
    payment_reference: str,
    boost_type: str,
    duration_days: int,
    purchased_by: Optional[str],
    listing_id: Optional[str] = None,
) -> Optional[ListingBoost]:
    """Create a boost paid in cash; returns None when the payment was already applied."""
    existing = await db.execute(
        select(ListingBoost).where(ListingBoost.external_reference == payment_reference)
    )
    if existing.scalar_one_or_none():
        logger.info("Turbo payment %s already applied, skipping", payment_reference)
        return None

    start, end = _boost_window(duration_days)
    boost = ListingBoost(
        type=boost_type,
        listing_id=listing_id or None,
        user_id=None if listing_id else purchased_by,
        purchased_by=purchased_by,
        price_credits=0,
        start_date=start,
        end_date=end,
        is_active=True,
        external_reference=payment_reference,
    )
    db.add(boost)
    await db.commit()
    logger.info("Paid boost granted id=%s payment=%s listing=%s", boost.id, payment_reference, listing_id)
    return boost


async def expire_boosts(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flip is_active off for every boost whose end date has passed."""
    current = now or utcnow()
    result = await db.execute(
        update(ListingBoost)
        .where(ListingBoost.is_active.is_(True), ListingBoost.end_date <= current)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    expired = int(result.rowcount or 0)
    if expired:
        logger.info("Expired %s boost(s)", expired)
    return expired


async def list_user_boosts(user_id: str, db: AsyncSession) -> List[ListingBoost]:
    result = await db.execute(
        select(ListingBoost)
        .where(ListingBoost.purchased_by == user_id)
        .order_by(ListingBoost.created_at.desc())
    )
    return list(result.scalars().all())


def serialize_boost(boost: ListingBoost, now: Optional[datetime] = None) -> Dict[str, Any]:
    start = ensure_utc(boost.start_date)
    end = ensure_utc(boost.end_date)
    return {
        "id": boost.id,
        "type": boost.type,
        "listingId": boost.listing_id,
        "blogPostId": boost.blog_post_id,
        "userId": boost.user_id,
        "priceCredits": boost.price_credits,
        "startDate": start.isoformat() if start else None,
        "endDate": end.isoformat() if end else None,
        "isActive": bool(boost.is_active),
        "live": boost.is_live(now),
        "category": boost.category,
    }
