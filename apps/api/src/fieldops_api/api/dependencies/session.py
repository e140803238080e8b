"""Session-aware dependencies for operator and field-app APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.db.session import get_session
from fieldops_api.models.user import User, UserStatusEnum


def parse_session_user(session_user: str | None) -> UUID | None:
    """Parse the forwarded principal header, rejecting malformed identifiers."""

    if not session_user:
        return None
    try:
        return UUID(session_user)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error


async def _load_user(db: AsyncSession, user_id: UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session user not found",
        )
    if user.status == UserStatusEnum.SUSPENDED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session user is suspended",
        )
    return user


async def require_operator(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the authenticated approver from forwarded session headers."""

    user_id = parse_session_user(session_user)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    return await _load_user(db, user_id)


async def optional_session_user(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    user_id = parse_session_user(session_user)
    if user_id is None:
        return None
    return await _load_user(db, user_id)
