"""Forum categories, threads and posts."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from database import utcnow
from models.forum import ForumCategory, ForumPost, ForumThread
from models.user import User
from services.errors import NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)


def _author(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {"id": user.id, "name": user.name, "image": user.image}


def serialize_category(category: ForumCategory, thread_count: Optional[int] = None) -> Dict[str, Any]:
    payload = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "order": category.order,
    }
    if thread_count is not None:
        payload["threadCount"] = int(thread_count)
    return payload


def serialize_thread(thread: ForumThread, *, post_count: Optional[int] = None) -> Dict[str, Any]:
    payload = {
        "id": thread.id,
        "title": thread.title,
        "content": thread.content,
        "views": thread.views,
        "isSticky": bool(thread.is_sticky),
        "isLocked": bool(thread.is_locked),
        "isSponsored": bool(thread.is_sponsored),
        "categoryId": thread.category_id,
        "author": _author(thread.author),
        "lastPostAt": thread.last_post_at.isoformat() if thread.last_post_at else None,
        "createdAt": thread.created_at.isoformat() if thread.created_at else None,
    }
    if post_count is not None:
        payload["postCount"] = int(post_count)
    return payload


def serialize_post(post: ForumPost) -> Dict[str, Any]:
    return {
        "id": post.id,
        "content": post.content,
        "threadId": post.thread_id,
        "author": _author(post.author),
        "createdAt": post.created_at.isoformat() if post.created_at else None,
    }


async def list_categories(db: AsyncSession) -> List[Dict[str, Any]]:
    thread_counts = (
        select(ForumThread.category_id, func.count(ForumThread.id).label("thread_count"))
        .group_by(ForumThread.category_id)
        .subquery()
    )
    result = await db.execute(
        select(ForumCategory, func.coalesce(thread_counts.c.thread_count, 0))
        .outerjoin(thread_counts, thread_counts.c.category_id == ForumCategory.id)
        .where(ForumCategory.is_active.is_(True))
        .order_by(ForumCategory.order.asc(), ForumCategory.name.asc())
    )
    return [serialize_category(category, count) for category, count in result.all()]


async def get_category_with_threads(slug: str, db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(
        select(ForumCategory).where(ForumCategory.slug == slug, ForumCategory.is_active.is_(True))
    )
    category = result.scalar_one_or_none()
    if not category:
        raise NotFound("Category not found")

    post_counts = (
        select(ForumPost.thread_id, func.count(ForumPost.id).label("post_count"))
        .group_by(ForumPost.thread_id)
        .subquery()
    )
    threads = await db.execute(
        select(ForumThread, func.coalesce(post_counts.c.post_count, 0))
        .outerjoin(post_counts, post_counts.c.thread_id == ForumThread.id)
        .where(ForumThread.category_id == category.id)
        .options(selectinload(ForumThread.author))
        .order_by(ForumThread.is_sticky.desc(), ForumThread.last_post_at.desc())
    )
    payload = serialize_category(category)
    payload["threads"] = [serialize_thread(thread, post_count=count) for thread, count in threads.all()]
    return payload


async def create_thread(
    author_id: str,
    db: AsyncSession,
    *,
    title: Optional[str],
    content: Optional[str],
    category_id: Optional[str],
) -> ForumThread:
    if not (title or "").strip() or not (content or "").strip() or not category_id:
        raise ValidationError("Missing required fields: title, content, categoryId")

    category = await db.execute(
        select(ForumCategory.id).where(ForumCategory.id == category_id, ForumCategory.is_active.is_(True))
    )
    if category.scalar_one_or_none() is None:
        raise NotFound("Category not found")

    now = utcnow()
    thread = ForumThread(
        title=title.strip(),
        content=content.strip(),
        category_id=category_id,
        author_id=author_id,
        last_post_at=now,
    )
    db.add(thread)
    await db.commit()
    logger.info("Forum thread created id=%s category=%s author=%s", thread.id, category_id, author_id)
    return await _load_thread(thread.id, db)


async def _load_thread(thread_id: str, db: AsyncSession, *, with_posts: bool = False) -> ForumThread:
    query = (
        select(ForumThread)
        .where(ForumThread.id == thread_id)
        .options(selectinload(ForumThread.author))
        .execution_options(populate_existing=True)
    )
    if with_posts:
        query = query.options(selectinload(ForumThread.posts).selectinload(ForumPost.author))
    result = await db.execute(query)
    thread = result.scalar_one_or_none()
    if not thread:
        raise NotFound("Thread not found")
    return thread


async def get_thread(thread_id: str, db: AsyncSession) -> Dict[str, Any]:
    """Return the thread with its posts and count the view."""
    bumped = await db.execute(
        update(ForumThread)
        .where(ForumThread.id == thread_id)
        .values(views=ForumThread.views + 1)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount != 1:
        raise NotFound("Thread not found")
    await db.commit()

    thread = await _load_thread(thread_id, db, with_posts=True)
    posts = sorted(thread.posts, key=lambda post: post.created_at)
    payload = serialize_thread(thread, post_count=len(posts))
    payload["posts"] = [serialize_post(post) for post in posts]
    return payload


async def create_post(
    author_id: str,
    db: AsyncSession,
    *,
    content: Optional[str],
    thread_id: Optional[str],
) -> ForumPost:
    if not (content or "").strip() or not thread_id:
        raise ValidationError("Missing required fields: content, threadId")

    thread_result = await db.execute(select(ForumThread).where(ForumThread.id == thread_id))
    thread = thread_result.scalar_one_or_none()
    if not thread:
        raise NotFound("Thread not found")
    if thread.is_locked:
        raise Unauthorized("Thread is locked")

    post = ForumPost(content=content.strip(), thread_id=thread_id, author_id=author_id)
    db.add(post)
    thread.last_post_at = utcnow()
    await db.commit()
    logger.info("Forum post created id=%s thread=%s author=%s", post.id, thread_id, author_id)

    result = await db.execute(
        select(ForumPost)
        .where(ForumPost.id == post.id)
        .options(selectinload(ForumPost.author))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()
