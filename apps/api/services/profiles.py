"""Public provider and creator profiles, and the owner's own profile."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from models.listing import LISTING_ACTIVE, Listing
from models.profile import Profile
from models.user import User
from services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

MIN_PROFILE_AGE = 18
MAX_PAGE_SIZE = 50
PROFILE_FIELDS = ("name", "age", "city", "description", "phone")


def _has_active_listing():
    return (
        select(Listing.id)
        .where(Listing.user_id == Profile.user_id, Listing.status == LISTING_ACTIVE)
        .exists()
    )


async def list_profiles(
    db: AsyncSession,
    *,
    city: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    include_hidden: bool = False,
) -> Dict[str, Any]:
    """Page through profiles.

    Without ``include_hidden`` only complete profiles are listed: a positive
    age, a city, and either an ACTIVE listing (providers) or the content
    creator flag.
    """
    page = max(int(page), 1)
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))

    conditions = []
    if city:
        conditions.append(Profile.city == city)
    if not include_hidden:
        conditions.extend(
            [
                Profile.age > 0,
                Profile.city != "",
                or_(
                    User.is_content_creator.is_(True),
                    (User.is_service_provider.is_(True)) & _has_active_listing(),
                ),
            ]
        )

    total_result = await db.execute(
        select(func.count(Profile.id)).join(User, User.id == Profile.user_id).where(*conditions)
    )
    total = int(total_result.scalar() or 0)

    result = await db.execute(
        select(Profile)
        .join(User, User.id == Profile.user_id)
        .where(*conditions)
        .options(selectinload(Profile.user))
        .order_by(Profile.created_at.desc(), Profile.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    profiles = list(result.scalars().all())
    return {
        "profiles": [serialize_profile(profile) for profile in profiles],
        "total": total,
        "pages": (total + limit - 1) // limit,
        "currentPage": page,
    }


async def get_profile(profile_id: str, db: AsyncSession) -> Profile:
    result = await db.execute(
        select(Profile).where(Profile.id == profile_id).options(selectinload(Profile.user))
    )
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFound("Profile not found")
    return profile


async def get_creator_profile(user_id: str, db: AsyncSession) -> Profile:
    """Profile of a content creator; 404 for anyone else."""
    result = await db.execute(
        select(Profile).where(Profile.user_id == user_id).options(selectinload(Profile.user))
    )
    profile = result.scalar_one_or_none()
    if not profile or not profile.user.is_content_creator:
        raise NotFound("Creator profile not found")
    return profile


async def get_own_profile(user: User, db: AsyncSession) -> Dict[str, Any]:
    profile_result = await db.execute(select(Profile).where(Profile.user_id == user.id))
    listings_result = await db.execute(
        select(Listing.id, Listing.title, Listing.status, Listing.created_at)
        .where(Listing.user_id == user.id)
        .order_by(Listing.created_at.desc())
    )
    profile = profile_result.scalar_one_or_none()
    return {
        "profile": serialize_profile(profile, include_user=False) if profile else None,
        "listings": [
            {
                "id": listing_id,
                "title": title,
                "status": status,
                "createdAt": created_at.isoformat() if created_at else None,
            }
            for listing_id, title, status, created_at in listings_result.all()
        ],
    }


def _clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in fields.items():
        if key not in PROFILE_FIELDS or value is None:
            continue
        if key == "age":
            if isinstance(value, bool):
                raise ValidationError("age must be a whole number")
            try:
                age = int(value)
            except (TypeError, ValueError) as exc:
                raise ValidationError("age must be a whole number") from exc
            if age < MIN_PROFILE_AGE:
                raise ValidationError(f"age must be at least {MIN_PROFILE_AGE}")
            cleaned[key] = age
            continue
        text = str(value).strip()
        if key == "name" and not text:
            raise ValidationError("name cannot be empty")
        cleaned[key] = text
    return cleaned


async def update_own_profile(user: User, db: AsyncSession, fields: Dict[str, Any]) -> Profile:
    """Apply the given fields to the caller's profile, creating it on first save."""
    cleaned = _clean_fields(fields)

    result = await db.execute(select(Profile).where(Profile.user_id == user.id))
    profile = result.scalar_one_or_none()
    if profile is None:
        profile = Profile(user_id=user.id, name=cleaned.get("name") or user.name or user.email.split("@")[0])
        db.add(profile)
    for key, value in cleaned.items():
        setattr(profile, key, value)
    await db.commit()
    logger.info("Profile saved user=%s fields=%s", user.id, sorted(cleaned))
    return profile


def serialize_profile(profile: Profile, *, include_user: bool = True) -> Dict[str, Any]:
    payload = {
        "id": profile.id,
        "userId": profile.user_id,
        "name": profile.name,
        "age": profile.age or 0,
        "city": profile.city or "",
        "description": profile.description or "",
        "phone": profile.phone,
        "createdAt": profile.created_at.isoformat() if profile.created_at else None,
    }
    if include_user:
        payload["user"] = {
            "id": profile.user.id,
            "isContentCreator": bool(profile.user.is_content_creator),
            "isServiceProvider": bool(profile.user.is_service_provider),
        }
    return payload
