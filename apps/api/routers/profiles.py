"""Public profile directory and creator pages."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AdminGate, AuthContext, get_admin_gate, get_optional_auth_context
from services.profiles import get_creator_profile, get_profile, list_profiles, serialize_profile

router = APIRouter()


@router.get("/profiles")
async def list_profiles_route(
    city: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    gate: AdminGate = Depends(get_admin_gate),
    db: AsyncSession = Depends(get_db),
):
    """Admins also see incomplete profiles and providers without active listings."""
    viewer_is_admin = bool(auth) and gate.is_admin(auth.role, auth.email)
    return await list_profiles(db, city=city, page=page, limit=limit, include_hidden=viewer_is_admin)


@router.get("/profiles/{profile_id}")
async def get_profile_route(profile_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_profile(await get_profile(profile_id, db))


@router.get("/creator/{user_id}")
async def get_creator_route(user_id: str, db: AsyncSession = Depends(get_db)):
    return {"profile": serialize_profile(await get_creator_profile(user_id, db))}
