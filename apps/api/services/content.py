"""Premium content items, VOD unlocks and blog posts."""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.blog_post import BlogPost
from models.content_item import ContentItem
from models.credit_transaction import CREDIT_SPEND
from models.transaction import TRANSACTION_VOD_UNLOCK
from models.user import User
from services.errors import NotFound, ValidationError
from services.ledger import debit_credits, ensure_sufficient_credits, record_credit_transaction
from services.transactions import record_transaction, serialize_transaction

logger = logging.getLogger(__name__)


async def create_content_item(
    user_id: str,
    db: AsyncSession,
    *,
    title: Optional[str],
    media_url: Optional[str] = None,
    is_premium: bool = False,
    price_credits: Optional[int] = None,
) -> ContentItem:
    if not (title or "").strip():
        raise ValidationError("title is required")
    if is_premium and (price_credits is None or int(price_credits) <= 0):
        raise ValidationError("Premium content requires priceCredits greater than 0")

    item = ContentItem(
        user_id=user_id,
        title=title.strip(),
        media_url=media_url,
        is_premium=bool(is_premium),
        price_credits=int(price_credits) if price_credits is not None else None,
    )
    db.add(item)
    await db.commit()
    logger.info("Content item created id=%s owner=%s premium=%s", item.id, user_id, item.is_premium)
    return item


def serialize_content_item(item: ContentItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "userId": item.user_id,
        "title": item.title,
        "mediaUrl": item.media_url,
        "isPremium": bool(item.is_premium),
        "priceCredits": item.price_credits,
        "viewsCount": item.views_count,
        "createdAt": item.created_at.isoformat() if item.created_at else None,
    }


async def purchase_vod(user_id: str, content_item_id: Optional[str], db: AsyncSession) -> Dict[str, Any]:
    """Spend credits on a premium item and owe its owner the cash value."""
    if not content_item_id:
        raise ValidationError("Content item ID required")

    user_result = await db.execute(select(User).where(User.id == user_id))
    user = user_result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")

    item_result = await db.execute(select(ContentItem).where(ContentItem.id == content_item_id))
    item = item_result.scalar_one_or_none()
    if not item:
        raise NotFound("Content item not found")
    if not item.is_premium or not item.price_credits:
        raise ValidationError("Content is free or not premium")
    if item.user_id == user.id:
        raise ValidationError("You own this content")

    cost = int(item.price_credits)
    ensure_sufficient_credits(user, cost)

    remaining = await debit_credits(user.id, cost, db)
    transaction = await record_transaction(
        db,
        transaction_type=TRANSACTION_VOD_UNLOCK,
        amount_credits=cost,
        provider_id=item.user_id,
        client_id=user.id,
        content_item_id=item.id,
    )
    await record_credit_transaction(
        user.id,
        db,
        entry_type=CREDIT_SPEND,
        amount=-cost,
        balance_after=remaining,
        description=f"Unlocked {item.title}",
    )
    await db.execute(
        update(ContentItem)
        .where(ContentItem.id == item.id)
        .values(views_count=ContentItem.views_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("VOD unlocked item=%s client=%s credits=%s", item.id, user.id, cost)
    return {
        "success": True,
        "transaction": serialize_transaction(transaction),
        "remainingCredits": remaining,
    }


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "post"


async def _unique_slug(base: str, db: AsyncSession) -> str:
    candidate = base
    suffix = 2
    while True:
        existing = await db.execute(select(BlogPost.id).where(BlogPost.slug == candidate))
        if existing.scalar_one_or_none() is None:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


async def create_blog_post(
    author_id: str,
    db: AsyncSession,
    *,
    title: Optional[str],
    content: Optional[str],
    slug: Optional[str] = None,
    is_published: bool = True,
) -> BlogPost:
    if not (title or "").strip() or not (content or "").strip():
        raise ValidationError("Missing required fields: title, content")

    post = BlogPost(
        author_id=author_id,
        title=title.strip(),
        slug=await _unique_slug(slugify(slug or title), db),
        content=content.strip(),
        is_published=bool(is_published),
    )
    db.add(post)
    await db.commit()
    logger.info("Blog post created id=%s slug=%s author=%s", post.id, post.slug, author_id)
    return post


async def list_blog_posts(db: AsyncSession, *, limit: int = 50) -> List[BlogPost]:
    result = await db.execute(
        select(BlogPost)
        .where(BlogPost.is_published.is_(True))
        .order_by(BlogPost.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_blog_post(slug: str, db: AsyncSession) -> BlogPost:
    result = await db.execute(select(BlogPost).where(BlogPost.slug == slug, BlogPost.is_published.is_(True)))
    post = result.scalar_one_or_none()
    if not post:
        raise NotFound("Blog post not found")
    return post


def serialize_blog_post(post: BlogPost, *, include_content: bool = True) -> Dict[str, Any]:
    payload = {
        "id": post.id,
        "authorId": post.author_id,
        "title": post.title,
        "slug": post.slug,
        "isPublished": bool(post.is_published),
        "createdAt": post.created_at.isoformat() if post.created_at else None,
    }
    if include_content:
        payload["content"] = post.content
    return payload
