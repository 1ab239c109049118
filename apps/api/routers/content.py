"""Premium content and blog router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import RoleFlag, User
from routers.auth_scope import AuthContext, get_auth_context, require_capability
from services.content import (
    create_blog_post,
    create_content_item,
    get_blog_post,
    list_blog_posts,
    serialize_blog_post,
    serialize_content_item,
)

router = APIRouter()


class ContentItemRequest(BaseModel):
    title: Optional[str] = None
    mediaUrl: Optional[str] = None
    isPremium: bool = False
    priceCredits: Optional[int] = None


class BlogPostRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    slug: Optional[str] = None
    isPublished: bool = True


@router.post("/content", status_code=201)
async def create_content_route(
    request: ContentItemRequest,
    user: User = Depends(require_capability(RoleFlag.CONTENT_CREATOR)),
    db: AsyncSession = Depends(get_db),
):
    item = await create_content_item(
        user.id,
        db,
        title=request.title,
        media_url=request.mediaUrl,
        is_premium=request.isPremium,
        price_credits=request.priceCredits,
    )
    return {"success": True, "contentItem": serialize_content_item(item)}


@router.post("/blog", status_code=201)
async def create_blog_post_route(
    request: BlogPostRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    post = await create_blog_post(
        auth.user_id,
        db,
        title=request.title,
        content=request.content,
        slug=request.slug,
        is_published=request.isPublished,
    )
    return {"success": True, "post": serialize_blog_post(post)}


@router.get("/blog")
async def list_blog_posts_route(db: AsyncSession = Depends(get_db)):
    posts = await list_blog_posts(db)
    return {"posts": [serialize_blog_post(post, include_content=False) for post in posts]}


@router.get("/blog/{slug}")
async def get_blog_post_route(slug: str, db: AsyncSession = Depends(get_db)):
    return serialize_blog_post(await get_blog_post(slug, db))
