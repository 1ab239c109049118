"""Listings router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import RoleFlag, User
from routers.auth_scope import AuthContext, get_auth_context, require_capability
from services.listings import (
    create_listing,
    get_listing,
    list_active_listings,
    serialize_listing,
    update_listing,
)

router = APIRouter()


class ListingRequest(BaseModel):
    title: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None


@router.post("", status_code=201)
async def create_listing_route(
    request: ListingRequest,
    user: User = Depends(require_capability(RoleFlag.SERVICE_PROVIDER)),
    db: AsyncSession = Depends(get_db),
):
    listing = await create_listing(
        user,
        db,
        title=request.title,
        city=request.city,
        description=request.description,
        price=request.price,
    )
    return {"success": True, "listing": serialize_listing(listing)}


@router.get("")
async def list_listings_route(
    city: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    listings = await list_active_listings(db, city=city)
    return {"listings": [serialize_listing(listing) for listing in listings]}


@router.get("/{listing_id}")
async def get_listing_route(listing_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_listing(await get_listing(listing_id, db))


@router.put("/{listing_id}")
async def update_listing_route(
    listing_id: str,
    request: ListingRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    listing = await update_listing(listing_id, auth.user_id, db, request.model_dump(exclude_unset=True))
    return {"success": True, "listing": serialize_listing(listing)}
