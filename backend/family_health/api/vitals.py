from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.database import get_db
from family_health.dependencies import (
    get_current_user,
    get_own_or_admin_member,
    load_family_member,
    require_admin,
)
from family_health.middleware.audit import log_audit_event
from family_health.models.member import FamilyMember
from family_health.models.user import User
from family_health.models.vital import HealthVital
from family_health.schemas.base import MessageResponse, Pagination
from family_health.schemas.vitals import (
    VitalCreateRequest,
    VitalEnvelope,
    VitalListResponse,
    VitalResponse,
    VitalUpdateRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["vitals"])

DUPLICATE_SUBMISSION_WINDOW = timedelta(seconds=5)
NULLABLE_FIELDS = {"notes"}


async def _load_vital(db: AsyncSession, vital_id: UUID, family_id: UUID) -> HealthVital | None:
    result = await db.execute(
        select(HealthVital)
        .join(FamilyMember, HealthVital.member_id == FamilyMember.id)
        .where(HealthVital.id == vital_id, FamilyMember.family_id == family_id)
    )
    return result.scalar_one_or_none()


async def _is_duplicate_submission(db: AsyncSession, body: VitalCreateRequest) -> bool:
    """True if the same reading was recorded for the member within the debounce window."""
    cutoff = datetime.now(timezone.utc) - DUPLICATE_SUBMISSION_WINDOW
    result = await db.execute(
        select(HealthVital.id)
        .where(
            HealthVital.member_id == body.member_id,
            HealthVital.vital_type == body.vital_type,
            HealthVital.value == body.value,
            HealthVital.unit == body.unit,
            HealthVital.created_at > cutoff,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


@router.get("/vitals/{member_id}", response_model=VitalListResponse)
async def list_vitals(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    member: FamilyMember = Depends(get_own_or_admin_member),
    db: AsyncSession = Depends(get_db),
) -> VitalListResponse:
    """List vitals for a family member, newest first."""
    result = await db.execute(
        select(HealthVital)
        .where(HealthVital.member_id == member.id)
        .order_by(HealthVital.recorded_at.desc())
        .offset(offset)
        .limit(limit)
    )
    vitals = result.scalars().all()

    total_result = await db.execute(
        select(func.count()).select_from(HealthVital).where(HealthVital.member_id == member.id)
    )
    total = total_result.scalar() or 0

    return VitalListResponse(
        vitals=[VitalResponse.model_validate(v) for v in vitals],
        pagination=Pagination(total=total, limit=limit, offset=offset),
    )


@router.post("/vitals", response_model=VitalEnvelope, status_code=status.HTTP_201_CREATED)
async def add_vital(
    body: VitalCreateRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> VitalEnvelope:
    """Record a vital for a member of the caller's family."""
    member = await load_family_member(db, body.member_id, user.family_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only add vitals for your family members",
        )

    if await _is_duplicate_submission(db, body):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This vital has already been added recently. Please wait a moment before trying again.",
        )

    vital = HealthVital(
        member_id=body.member_id,
        vital_type=body.vital_type,
        value=body.value,
        unit=body.unit,
        notes=body.notes,
        recorded_at=body.recorded_at or datetime.now(timezone.utc),
    )
    db.add(vital)
    await db.commit()
    await db.refresh(vital)

    actor_id = user.id
    response = VitalEnvelope(message="Vital added successfully", vital=VitalResponse.model_validate(vital))
    await log_audit_event(
        db,
        user_id=actor_id,
        action="vital.create",
        resource_type="health_vital",
        resource_id=vital.id,
        ip_address=request.client.host if request.client else None,
        details={"vital_type": body.vital_type},
    )
    return response


@router.put("/vitals/{vital_id}", response_model=VitalEnvelope)
async def update_vital(
    vital_id: UUID,
    body: VitalUpdateRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> VitalEnvelope:
    """Partially update a vital."""
    vital = await _load_vital(db, vital_id, user.family_id)
    if vital is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vital not found")

    changes = {
        field: value
        for field, value in body.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide at least one field to update",
        )

    for field, value in changes.items():
        setattr(vital, field, value)
    await db.commit()
    await db.refresh(vital)

    actor_id = user.id
    response = VitalEnvelope(message="Vital updated successfully", vital=VitalResponse.model_validate(vital))
    await log_audit_event(
        db,
        user_id=actor_id,
        action="vital.update",
        resource_type="health_vital",
        resource_id=vital_id,
        ip_address=request.client.host if request.client else None,
        details={"fields": sorted(changes)},
    )
    return response


@router.delete("/vitals/{vital_id}", response_model=MessageResponse)
async def delete_vital(
    vital_id: UUID,
    request: Request,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Delete a vital. Admin only."""
    vital = await _load_vital(db, vital_id, user.family_id)
    if vital is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vital not found")

    actor_id = user.id
    await db.delete(vital)
    await db.commit()

    await log_audit_event(
        db,
        user_id=actor_id,
        action="vital.delete",
        resource_type="health_vital",
        resource_id=vital_id,
        ip_address=request.client.host if request.client else None,
    )
    return MessageResponse(message="Vital deleted successfully")
