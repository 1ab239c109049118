"""Creator wishlists with optional WooCommerce enrichment."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.user import User
from models.wishlist_item import WishlistItem
from services import woocommerce
from services.errors import NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)


def _ensure_owner_or_admin(owner_id: str, actor_id: str, actor_is_admin: bool) -> None:
    if owner_id != actor_id and not actor_is_admin:
        raise Unauthorized("Forbidden")


async def create_item(
    db: AsyncSession,
    *,
    actor_id: str,
    actor_is_admin: bool,
    user_id: Optional[str],
    product_name: Optional[str],
    product_url: Optional[str],
    price: Optional[float] = None,
) -> WishlistItem:
    if not user_id or not (product_name or "").strip() or not (product_url or "").strip():
        raise ValidationError("Missing required fields: userId, productName, productUrl")
    _ensure_owner_or_admin(user_id, actor_id, actor_is_admin)
    if price is not None and float(price) < 0:
        raise ValidationError("price must not be negative")

    owner = await db.execute(select(User.id).where(User.id == user_id))
    if owner.scalar_one_or_none() is None:
        raise NotFound("User not found")

    item = WishlistItem(
        user_id=user_id,
        product_name=product_name.strip(),
        product_url=product_url.strip(),
        price=float(price) if price is not None else None,
    )
    db.add(item)
    await db.commit()
    logger.info("Wishlist item created id=%s user=%s", item.id, user_id)
    return item


async def delete_item(item_id: str, db: AsyncSession, *, actor_id: str, actor_is_admin: bool) -> None:
    result = await db.execute(select(WishlistItem).where(WishlistItem.id == item_id))
    item = result.scalar_one_or_none()
    if not item:
        raise NotFound("Wishlist item not found")
    _ensure_owner_or_admin(item.user_id, actor_id, actor_is_admin)
    await db.delete(item)
    await db.commit()
    logger.info("Wishlist item deleted id=%s by=%s", item_id, actor_id)


def serialize_item(item: WishlistItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "userId": item.user_id,
        "productName": item.product_name,
        "productUrl": item.product_url,
        "price": item.price,
        "isFulfilled": bool(item.is_fulfilled),
        "createdAt": item.created_at.isoformat() if item.created_at else None,
    }


async def _enrich(payload: Dict[str, Any]) -> Dict[str, Any]:
    product_id = woocommerce.extract_product_id(payload["productUrl"])
    if not product_id:
        return payload

    payload["wooProductId"] = product_id
    payload["cartUrl"] = woocommerce.build_cart_url(product_id)
    details = await woocommerce.get_product_details(product_id)
    if not details:
        return payload

    payload["wooDetails"] = {
        "currentPrice": details["price"],
        "regularPrice": details["regularPrice"],
        "salePrice": details["salePrice"],
        "stockStatus": details["stockStatus"],
        "inStock": details["inStock"],
        "purchasable": details["purchasable"],
    }
    if details.get("url"):
        payload["productUrl"] = details["url"]
    if details["price"] > 0:
        payload["price"] = details["price"]
    return payload


async def get_creator_wishlist(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(
        select(WishlistItem)
        .where(WishlistItem.user_id == user_id, WishlistItem.is_fulfilled.is_(False))
        .order_by(WishlistItem.created_at.desc())
    )
    items = result.scalars().all()
    enriched: List[Dict[str, Any]] = await asyncio.gather(*(_enrich(serialize_item(item)) for item in items))

    name_result = await db.execute(select(User.name).where(User.id == user_id))
    creator_name = name_result.scalar_one_or_none()

    return {"userId": user_id, "creatorName": creator_name, "items": list(enriched)}
