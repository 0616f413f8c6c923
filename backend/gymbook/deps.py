import logging
from typing import AsyncIterator, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .domain.services import Actor
from .models import User, UserRole
from .utils.auth import decode_access_token

logger = logging.getLogger(__name__)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(authorization: str | None) -> str:
    if authorization is None:
        raise _unauthorized("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Bearer token required")
    return token.strip()


async def get_current_actor(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> Actor:
    token = _bearer_token(authorization)
    settings = get_settings()
    try:
        claims = decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise _unauthorized("invalid or expired token") from exc

    try:
        user = await session.get(User, claims.user_id)
    except SQLAlchemyError as exc:
        logger.exception("failed to load user %s", claims.user_id)
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="user lookup failed") from exc
    # The stored role wins over the one in the token, so role changes apply immediately.
    actor = Actor(user_id=user.id, role=user.role) if user is not None else None
    # End the implicit transaction so the endpoint can open its own.
    await session.rollback()
    if actor is None:
        raise _unauthorized("user no longer exists")
    return actor


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[Actor]]:
    allowed = frozenset(roles)

    async def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not allowed for your role")
        return actor

    return _dependency


require_staff = require_roles(UserRole.INSTRUCTOR, UserRole.ADMIN)
require_admin = require_roles(UserRole.ADMIN)
