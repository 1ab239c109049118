"""Authentication router: registration, login, email verification and password reset."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import ROLE_ADMIN, ROLE_USER, User
from routers.auth_scope import AdminGate, get_admin_gate, get_current_user
from routers.rate_limit import rate_limit
from services.accounts import (
    authenticate,
    register_user,
    request_password_reset,
    reset_password,
    serialize_user,
    verify_email,
)
from services.session_token import create_session_token

router = APIRouter()
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    username: Optional[str] = None
    accountType: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None


def _effective_role(user: User, gate: AdminGate) -> str:
    return ROLE_ADMIN if gate.is_admin(user.role, user.email) else ROLE_USER


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    _rate_limit: None = Depends(rate_limit("auth_register", limit=10, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    user = await register_user(
        db,
        email=request.email,
        password=request.password,
        username=request.username,
        account_type=request.accountType,
    )
    return {
        "success": True,
        "message": "Account created. Please check your email to verify your account.",
        "user": serialize_user(user),
    }


@router.post("/login")
async def login(
    request: LoginRequest,
    _rate_limit: None = Depends(rate_limit("auth_login", limit=20, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
    gate: AdminGate = Depends(get_admin_gate),
):
    user = await authenticate(request.email, request.password, db)
    role = _effective_role(user, gate)
    session = create_session_token(user.id, email=user.email, role=role)
    logger.info("User logged in id=%s role=%s", user.id, role)
    return {
        "session_token": session["token"],
        "session_expires_at": session["expires_at"],
        "user": serialize_user(user, role=role),
    }


@router.get("/verify")
async def verify(token: Optional[str] = Query(default=None), db: AsyncSession = Depends(get_db)):
    user = await verify_email(token, db)
    return {"success": True, "message": "Email verified successfully", "userId": user.id}


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    _rate_limit: None = Depends(rate_limit("auth_forgot", limit=5, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    return await request_password_reset(request.email, db)


@router.post("/reset-password")
async def reset_password_route(
    request: ResetPasswordRequest,
    _rate_limit: None = Depends(rate_limit("auth_reset", limit=10, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    await reset_password(request.token, request.password, db)
    return {"success": True, "message": "Password updated successfully"}


@router.get("/me")
async def get_current_user_info(
    user: User = Depends(get_current_user),
    gate: AdminGate = Depends(get_admin_gate),
):
    return serialize_user(user, role=_effective_role(user, gate))


@router.post("/logout")
async def logout():
    """Sessions are stateless bearer tokens; the client drops its copy."""
    return {"success": True, "message": "Logged out successfully"}
