"""Authentication dependencies for API user scoping and the admin gate."""

from dataclasses import dataclass
from typing import FrozenSet, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import parse_admin_emails, settings
from database import get_db
from models.user import ROLE_ADMIN, RoleFlag, User
from services.errors import Unauthenticated, Unauthorized
from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class AdminGate:
    """Admin when the stored role is ADMIN or the email is allow-listed."""

    allow_list: FrozenSet[str]

    def is_allow_listed(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.allow_list

    def is_admin(self, role: Optional[str], email: Optional[str]) -> bool:
        return role == ROLE_ADMIN or self.is_allow_listed(email)


def get_admin_gate() -> AdminGate:
    return AdminGate(allow_list=frozenset(parse_admin_emails(settings.ADMIN_EMAILS)))


def _context_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> AuthContext:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise Unauthenticated()

    try:
        payload = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise Unauthenticated(str(exc)) from exc

    user_id = str(payload.get("sub", ""))
    if not user_id:
        raise Unauthenticated()
    return AuthContext(
        user_id=user_id,
        email=str(payload.get("email", "")) or None,
        role=payload.get("role"),
    )


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    return _context_from_credentials(credentials)


async def get_optional_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> Optional[AuthContext]:
    if not credentials:
        return None
    try:
        return _context_from_credentials(credentials)
    except Unauthenticated:
        return None


async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the session's user; a token for a deleted account is unauthenticated."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise Unauthenticated()
    return user


async def require_admin(
    user: User = Depends(get_current_user),
    gate: AdminGate = Depends(get_admin_gate),
) -> User:
    """Gate for every admin route: 401 without a session, 403 for non-admins."""
    if not gate.is_admin(user.role, user.email):
        raise Unauthorized("Admin access required")
    return user


def require_capability(*flags: RoleFlag):
    """Dependency factory requiring at least one of the given role flags; admins pass."""
    wanted = RoleFlag.NONE
    for flag in flags:
        wanted |= flag

    async def _dependency(
        user: User = Depends(get_current_user),
        gate: AdminGate = Depends(get_admin_gate),
    ) -> User:
        if not user.role_flags & wanted and not gate.is_admin(user.role, user.email):
            raise Unauthorized("Your account type cannot perform this action")
        return user

    return _dependency
