from __future__ import annotations

import logging
from uuid import UUID

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.middleware.auth import create_access_token
from family_health.models.family import Family
from family_health.models.member import FamilyMember
from family_health.models.user import ROLE_ADMIN, ROLE_MEMBER, User
from family_health.schemas.auth import UserResponse

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def split_display_name(name: str) -> tuple[str, str]:
    """Split "First Rest Of Name" into ("First", "Rest Of Name")."""
    parts = name.strip().split(" ")
    return parts[0] if parts else "", " ".join(parts[1:])


async def email_taken(db: AsyncSession, email: str) -> bool:
    existing = await db.execute(select(User.id).where(User.email == normalize_email(email)))
    return existing.scalar_one_or_none() is not None


def new_login(
    family_id: UUID,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = ROLE_MEMBER,
) -> User:
    """Build (but do not persist) a user belonging to ``family_id``."""
    return User(
        email=normalize_email(email),
        password_hash=hash_password(password),
        family_id=family_id,
        first_name=first_name,
        last_name=last_name,
        role=role,
    )


async def register_family(
    db: AsyncSession,
    email: str,
    password: str,
    family_name: str,
    first_name: str,
    last_name: str,
) -> User:
    """Create a family, its first (admin) user and that user's member profile."""
    if await email_taken(db, email):
        raise ValueError("Email is already registered")

    family = Family(name=family_name)
    db.add(family)
    await db.flush()

    user = new_login(family.id, email, password, first_name, last_name, role=ROLE_ADMIN)
    db.add(user)
    await db.flush()

    db.add(
        FamilyMember(
            family_id=family.id,
            user_id=user.id,
            name=f"{first_name} {last_name}",
        )
    )
    await db.commit()
    await db.refresh(user)
    logger.info("Registered family %s with admin user %s", family.id, user.id)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """Return the user for valid credentials, else raise ValueError."""
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    user = result.scalar_one_or_none()

    if not user or not verify_password(password, user.password_hash):
        raise ValueError("Email or password is incorrect")
    if not user.is_active:
        raise ValueError("Account is disabled")
    return user


def issue_token(user: User) -> str:
    return create_access_token(user.id, user.role)


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def build_user_response(db: AsyncSession, user: User) -> UserResponse:
    """Shape the user payload, preferring the linked member's name for display."""
    result = await db.execute(
        select(Family.name, FamilyMember.name)
        .select_from(Family)
        .outerjoin(FamilyMember, FamilyMember.user_id == user.id)
        .where(Family.id == user.family_id)
    )
    row = result.first()
    family_name = row[0] if row else None
    display_name = row[1] if row else None

    if display_name:
        first_name, last_name = split_display_name(display_name)
    else:
        first_name, last_name = user.first_name, user.last_name

    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=first_name,
        last_name=last_name,
        family_id=user.family_id,
        family_name=family_name,
        role=user.role,
    )
