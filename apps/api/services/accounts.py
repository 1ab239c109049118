"""Account registration, credential checks, email verification and password reset."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import ensure_utc, utcnow
from models.profile import Profile
from models.user import RoleFlag, User
from services.crypto import hash_password, verify_password
from services.email import send_password_reset_email, send_verification_email
from services.errors import NotFound, Unauthenticated, UpstreamFailure, ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
VERIFICATION_TTL = timedelta(hours=24)
RESET_TTL = timedelta(hours=1)

# accountType -> role flags granted at registration
ACCOUNT_TYPES = {
    "escort": RoleFlag.SERVICE_PROVIDER,
    "cam_creator": RoleFlag.CONTENT_CREATOR,
    "client": RoleFlag.CLIENT,
}

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a password reset link has been sent."


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


async def get_user_by_email(email: str, db: AsyncSession) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == _normalize_email(email)))
    return result.scalar_one_or_none()


async def get_user(user_id: str, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


async def register_user(
    db: AsyncSession,
    *,
    email: Optional[str],
    password: Optional[str],
    username: Optional[str],
    account_type: Optional[str] = None,
) -> User:
    normalized_email = _normalize_email(email)
    clean_username = (username or "").strip()
    if not normalized_email or not password or not clean_username:
        raise ValidationError("Missing required fields: email, password, username")
    if "@" not in normalized_email:
        raise ValidationError("Invalid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if await get_user_by_email(normalized_email, db):
        raise ValidationError("User with this email already exists")
    taken = await db.execute(select(User.id).where(User.name == clean_username))
    if taken.scalar_one_or_none() is not None:
        raise ValidationError("Username already taken")

    flag = ACCOUNT_TYPES.get((account_type or "client").strip().lower(), RoleFlag.CLIENT)
    user = User(
        email=normalized_email,
        name=clean_username,
        password_hash=hash_password(password),
        credits=0,
        is_client=flag == RoleFlag.CLIENT,
        is_content_creator=flag == RoleFlag.CONTENT_CREATOR,
        is_service_provider=flag == RoleFlag.SERVICE_PROVIDER,
        verification_token=secrets.token_urlsafe(32),
        verification_expiry=utcnow() + VERIFICATION_TTL,
    )
    db.add(user)
    if flag == RoleFlag.SERVICE_PROVIDER:
        db.add(Profile(user=user, name=clean_username))
    await db.commit()
    logger.info("User registered id=%s account_type=%s", user.id, account_type or "client")

    try:
        await send_verification_email(user.email, user.verification_token, clean_username)
    except UpstreamFailure:
        logger.warning("Verification email to user=%s failed", user.id)
    return user


async def authenticate(email: Optional[str], password: Optional[str], db: AsyncSession) -> User:
    if not email or not password:
        raise ValidationError("Email and password are required")
    user = await get_user_by_email(email, db)
    if not user or not user.password_hash or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid email or password")
    return user


async def verify_email(token: Optional[str], db: AsyncSession) -> User:
    if not token:
        raise ValidationError("Verification token required")
    result = await db.execute(select(User).where(User.verification_token == token))
    user = result.scalar_one_or_none()
    if not user:
        raise ValidationError("Invalid or expired verification token")

    if not user.email_verified:
        expiry = ensure_utc(user.verification_expiry)
        if expiry is None or expiry < utcnow():
            raise ValidationError("Invalid or expired verification token")
        user.email_verified = True
    user.verification_token = None
    user.verification_expiry = None
    await db.commit()
    logger.info("Email verified for user=%s", user.id)
    return user


async def request_password_reset(email: Optional[str], db: AsyncSession) -> Dict[str, Any]:
    """Same answer whether or not the account exists."""
    if not email:
        raise ValidationError("Email is required")
    user = await get_user_by_email(email, db)
    if user:
        user.reset_token = secrets.token_urlsafe(32)
        user.reset_expiry = utcnow() + RESET_TTL
        await db.commit()
        await send_password_reset_email(user.email, user.reset_token, user.name)
        logger.info("Password reset requested for user=%s", user.id)
    return {"success": True, "message": FORGOT_PASSWORD_MESSAGE}


async def reset_password(token: Optional[str], password: Optional[str], db: AsyncSession) -> User:
    if not token or not password:
        raise ValidationError("Token and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    result = await db.execute(select(User).where(User.reset_token == token))
    user = result.scalar_one_or_none()
    expiry = ensure_utc(user.reset_expiry) if user else None
    if not user or expiry is None or expiry < utcnow():
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = hash_password(password)
    user.reset_token = None
    user.reset_expiry = None
    await db.commit()
    logger.info("Password reset for user=%s", user.id)
    return user


def serialize_user(user: User, *, role: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": role or user.role,
        "credits": int(user.credits or 0),
        "isClient": bool(user.is_client),
        "isContentCreator": bool(user.is_content_creator),
        "isServiceProvider": bool(user.is_service_provider),
        "emailVerified": bool(user.email_verified),
        "isPro": bool(user.is_pro),
        "proUntil": user.pro_until.isoformat() if user.pro_until else None,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
