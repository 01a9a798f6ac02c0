from __future__ import annotations

from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.database import get_db
from family_health.middleware.auth import get_current_user_id
from family_health.models.member import FamilyMember
from family_health.models.user import User
from family_health.services.auth_service import get_user_by_id


async def get_current_user(
    user_id: UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Require authentication and return the active user behind the token."""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    user = await get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or disabled",
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def load_family_member(
    db: AsyncSession, member_id: UUID, family_id: UUID
) -> FamilyMember | None:
    result = await db.execute(
        select(FamilyMember).where(
            FamilyMember.id == member_id,
            FamilyMember.family_id == family_id,
        )
    )
    return result.scalar_one_or_none()


async def get_family_member(
    member_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FamilyMember:
    """Resolve ``member_id`` within the caller's family, else 403."""
    member = await load_family_member(db, member_id, user.family_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access data for your family members",
        )
    return member


async def get_own_or_admin_member(
    member: FamilyMember = Depends(get_family_member),
    user: User = Depends(get_current_user),
) -> FamilyMember:
    """Like get_family_member, but non-admins may only reach their own profile."""
    if not user.is_admin and member.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own data",
        )
    return member
