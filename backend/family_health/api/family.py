from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.database import get_db
from family_health.dependencies import get_current_user, load_family_member, require_admin
from family_health.middleware.audit import log_audit_event
from family_health.models.document import Document
from family_health.models.member import FamilyMember
from family_health.models.report import MedicalReport
from family_health.models.user import User
from family_health.models.vital import HealthVital
from family_health.schemas.base import MessageResponse
from family_health.schemas.family import (
    FamilyMemberResponse,
    MemberCreateRequest,
    MemberEnvelope,
    MemberListResponse,
    MemberUpdateRequest,
)
from family_health.services.auth_service import (
    email_taken,
    hash_password,
    new_login,
    normalize_email,
    split_display_name,
)
from family_health.services.file_storage import delete_stored_file

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/family", tags=["family"])

MEMBER_FIELDS = ("name", "date_of_birth", "gender", "blood_group", "mobile_number")


def _member_response(member: FamilyMember, login: User | None) -> FamilyMemberResponse:
    response = FamilyMemberResponse.model_validate(member)
    if login is not None:
        response.user_email = login.email
        response.role = login.role
    return response


async def _create_member(
    db: AsyncSession, family_id: UUID, body: MemberCreateRequest
) -> tuple[FamilyMember, User | None]:
    login = None
    if body.email:
        if await email_taken(db, body.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email is already registered",
            )
        first_name, last_name = split_display_name(body.name)
        login = new_login(family_id, body.email, body.password, first_name, last_name, role=body.role)
        db.add(login)
        await db.flush()

    member = FamilyMember(
        family_id=family_id,
        user_id=login.id if login else None,
        name=body.name,
        date_of_birth=body.date_of_birth,
        gender=body.gender,
        blood_group=body.blood_group,
        mobile_number=body.mobile_number,
    )
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member, login


@router.get("/members", response_model=MemberListResponse)
async def list_members(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MemberListResponse:
    """List the members of the caller's family with their login details."""
    result = await db.execute(
        select(FamilyMember, User)
        .outerjoin(User, FamilyMember.user_id == User.id)
        .where(FamilyMember.family_id == user.family_id)
        .order_by(FamilyMember.created_at)
    )
    return MemberListResponse(
        members=[_member_response(member, login) for member, login in result.all()]
    )


@router.post("/members", response_model=MemberEnvelope, status_code=status.HTTP_201_CREATED)
async def add_member(
    body: MemberCreateRequest,
    request: Request,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MemberEnvelope:
    """Add a family member, optionally with its own login."""
    actor_id = user.id
    member, login = await _create_member(db, user.family_id, body)
    response = MemberEnvelope(
        message="Family member added successfully",
        member=_member_response(member, login),
    )

    await log_audit_event(
        db,
        user_id=actor_id,
        action="member.create",
        resource_type="family_member",
        resource_id=member.id,
        ip_address=request.client.host if request.client else None,
        details={"with_login": login is not None},
    )
    return response


@router.post("/members/initial", response_model=MemberEnvelope, status_code=status.HTTP_201_CREATED)
async def add_initial_member(
    body: MemberCreateRequest,
    request: Request,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MemberEnvelope:
    """Add the first member of a family that has none yet."""
    count_result = await db.execute(
        select(func.count()).select_from(FamilyMember).where(FamilyMember.family_id == user.family_id)
    )
    if (count_result.scalar() or 0) > 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Family already has members",
        )

    actor_id = user.id
    member, login = await _create_member(db, user.family_id, body)
    response = MemberEnvelope(
        message="Initial family member added successfully",
        member=_member_response(member, login),
    )

    await log_audit_event(
        db,
        user_id=actor_id,
        action="member.create_initial",
        resource_type="family_member",
        resource_id=member.id,
        ip_address=request.client.host if request.client else None,
    )
    return response


@router.put("/members/{member_id}", response_model=MemberEnvelope)
async def update_member(
    member_id: UUID,
    body: MemberUpdateRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MemberEnvelope:
    """Update a member's profile; email/password changes go to the linked login."""
    member = await load_family_member(db, member_id, user.family_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Family member not found")
    if not user.is_admin and member.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own profile",
        )

    changes = body.model_dump(exclude_unset=True)
    email = changes.pop("email", None)
    password = changes.pop("password", None)
    member_changes = {k: v for k, v in changes.items() if k in MEMBER_FIELDS}
    if not member_changes and not email and not password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide at least one field to update",
        )
    if "name" in member_changes and member_changes["name"] is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name must not be empty")

    for field, value in member_changes.items():
        setattr(member, field, value)

    login = await db.get(User, member.user_id) if member.user_id else None
    if email and (login is None or normalize_email(email) != login.email):
        if await email_taken(db, email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email is already registered",
            )
    if login is not None:
        if email:
            login.email = normalize_email(email)
        if password:
            login.password_hash = hash_password(password)
    elif email or password:
        if not (email and password):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Both email and password are required to create a login",
            )
        first_name, last_name = split_display_name(member.name)
        login = new_login(member.family_id, email, password, first_name, last_name)
        db.add(login)
        await db.flush()
        member.user_id = login.id

    await db.commit()
    await db.refresh(member)
    if login is not None:
        await db.refresh(login)

    actor_id = user.id
    response = MemberEnvelope(
        message="Family member updated successfully",
        member=_member_response(member, login),
    )
    await log_audit_event(
        db,
        user_id=actor_id,
        action="member.update",
        resource_type="family_member",
        resource_id=member_id,
        ip_address=request.client.host if request.client else None,
        details={"fields": sorted(member_changes) + (["email"] if email else []) + (["password"] if password else [])},
    )
    return response


@router.delete("/members/{member_id}", response_model=MessageResponse)
async def delete_member(
    member_id: UUID,
    request: Request,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Delete a member with all of its vitals, reports, documents and login."""
    member = await load_family_member(db, member_id, user.family_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Family member not found")
    if member.user_id == user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own profile",
        )

    report_files = await db.execute(
        select(MedicalReport.file_path).where(MedicalReport.member_id == member_id)
    )
    document_files = await db.execute(
        select(Document.file_path).where(Document.member_id == member_id)
    )
    stored_files = list(report_files.scalars().all()) + list(document_files.scalars().all())

    actor_id = user.id
    linked_user_id = member.user_id
    await db.execute(delete(HealthVital).where(HealthVital.member_id == member_id))
    await db.execute(delete(MedicalReport).where(MedicalReport.member_id == member_id))
    await db.execute(delete(Document).where(Document.member_id == member_id))
    await db.delete(member)
    await db.flush()
    if linked_user_id is not None:
        await db.execute(delete(User).where(User.id == linked_user_id))
    await db.commit()

    for stored_name in stored_files:
        delete_stored_file(stored_name)
    logger.info("Deleted member %s and %d stored files", member_id, len(stored_files))

    await log_audit_event(
        db,
        user_id=actor_id,
        action="member.delete",
        resource_type="family_member",
        resource_id=member_id,
        ip_address=request.client.host if request.client else None,
    )
    return MessageResponse(message="Family member deleted successfully")
