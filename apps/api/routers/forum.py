"""Forum router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.forum import (
    create_post,
    create_thread,
    get_category_with_threads,
    get_thread,
    list_categories,
    serialize_post,
    serialize_thread,
)

router = APIRouter()


class ThreadCreateRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    categoryId: Optional[str] = None


class PostCreateRequest(BaseModel):
    content: Optional[str] = None
    threadId: Optional[str] = None


@router.get("/categories")
async def categories_route(db: AsyncSession = Depends(get_db)):
    return {"categories": await list_categories(db)}


@router.get("/categories/{slug}")
async def category_route(slug: str, db: AsyncSession = Depends(get_db)):
    return await get_category_with_threads(slug, db)


@router.post("/threads", status_code=201)
async def create_thread_route(
    request: ThreadCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    thread = await create_thread(
        auth.user_id,
        db,
        title=request.title,
        content=request.content,
        category_id=request.categoryId,
    )
    return serialize_thread(thread)


@router.get("/threads/{thread_id}")
async def thread_route(thread_id: str, db: AsyncSession = Depends(get_db)):
    return await get_thread(thread_id, db)


@router.post("/posts", status_code=201)
async def create_post_route(
    request: PostCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    post = await create_post(auth.user_id, db, content=request.content, thread_id=request.threadId)
    return serialize_post(post)
