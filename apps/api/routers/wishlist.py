"""Wishlist router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User
from routers.auth_scope import AdminGate, get_admin_gate, get_current_user
from services.wishlist import create_item, delete_item, get_creator_wishlist, serialize_item

router = APIRouter()


class WishlistCreateRequest(BaseModel):
    userId: Optional[str] = None
    productName: Optional[str] = None
    productUrl: Optional[str] = None
    price: Optional[float] = None


@router.post("/create", status_code=201)
async def create_wishlist_item_route(
    request: WishlistCreateRequest,
    user: User = Depends(get_current_user),
    gate: AdminGate = Depends(get_admin_gate),
    db: AsyncSession = Depends(get_db),
):
    item = await create_item(
        db,
        actor_id=user.id,
        actor_is_admin=gate.is_admin(user.role, user.email),
        user_id=request.userId,
        product_name=request.productName,
        product_url=request.productUrl,
        price=request.price,
    )
    return serialize_item(item)


@router.get("/{user_id}")
async def creator_wishlist_route(user_id: str, db: AsyncSession = Depends(get_db)):
    return await get_creator_wishlist(user_id, db)


@router.delete("/item/{item_id}")
async def delete_wishlist_item_route(
    item_id: str,
    user: User = Depends(get_current_user),
    gate: AdminGate = Depends(get_admin_gate),
    db: AsyncSession = Depends(get_db),
):
    await delete_item(item_id, db, actor_id=user.id, actor_is_admin=gate.is_admin(user.role, user.email))
    return {"success": True}
