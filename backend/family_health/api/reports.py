from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse
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
from family_health.middleware.rate_limit import UPLOAD, rate_limit
from family_health.models.base import utcnow
from family_health.models.member import FamilyMember
from family_health.models.report import REPORT_TYPES, MedicalReport
from family_health.models.user import User
from family_health.schemas.base import MessageResponse, Pagination
from family_health.schemas.reports import ReportEnvelope, ReportListResponse, ReportResponse
from family_health.services.file_storage import (
    PDF_MIME_TYPE,
    commit_with_stored_file,
    delete_stored_file,
    resolve_stored_path,
    store_pdf,
)
from family_health.utils.date_utils import parse_form_datetime
from family_health.utils.file_utils import strip_extension

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["reports"])


def _check_report_type(report_type: str | None) -> None:
    if report_type is not None and report_type not in REPORT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"reportType must be one of: {', '.join(REPORT_TYPES)}",
        )


def _report_date(value: str | None):
    try:
        return parse_form_datetime(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(e))


async def _load_report(db: AsyncSession, report_id: UUID, family_id: UUID) -> MedicalReport | None:
    result = await db.execute(
        select(MedicalReport)
        .join(FamilyMember, MedicalReport.member_id == FamilyMember.id)
        .where(MedicalReport.id == report_id, FamilyMember.family_id == family_id)
    )
    return result.scalar_one_or_none()


async def _report_file(db: AsyncSession, report_id: UUID, user: User) -> tuple[MedicalReport, Path]:
    report = await _load_report(db, report_id, user.family_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    file_path = resolve_stored_path(report.file_path)
    if file_path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report file does not exist")
    return report, file_path


@router.get("/reports/{member_id}", response_model=ReportListResponse)
async def list_reports(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    member: FamilyMember = Depends(get_own_or_admin_member),
    db: AsyncSession = Depends(get_db),
) -> ReportListResponse:
    """List medical reports for a family member, newest first."""
    result = await db.execute(
        select(MedicalReport)
        .where(MedicalReport.member_id == member.id)
        .order_by(MedicalReport.report_date.desc(), MedicalReport.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    reports = result.scalars().all()

    total_result = await db.execute(
        select(func.count()).select_from(MedicalReport).where(MedicalReport.member_id == member.id)
    )
    total = total_result.scalar() or 0

    return ReportListResponse(
        reports=[ReportResponse.model_validate(r) for r in reports],
        pagination=Pagination(total=total, limit=limit, offset=offset),
    )


@router.post(
    "/reports",
    response_model=ReportEnvelope,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(UPLOAD))],
)
async def upload_report(
    request: Request,
    file: UploadFile | None = File(None),
    member_id: UUID = Form(..., alias="memberId"),
    report_type: str = Form(..., alias="reportType"),
    report_sub_type: str | None = Form(None, alias="reportSubType"),
    title: str | None = Form(None),
    description: str | None = Form(None),
    report_date: str | None = Form(None, alias="reportDate"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ReportEnvelope:
    """Upload a PDF medical report for a member of the caller's family."""
    _check_report_type(report_type)
    parsed_date = _report_date(report_date)
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please upload a file")

    member = await load_family_member(db, member_id, user.family_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only upload reports for your family members",
        )

    stored = await store_pdf(file)
    report = MedicalReport(
        member_id=member_id,
        report_type=report_type,
        report_sub_type=report_sub_type or None,
        title=title.strip() if title and title.strip() else strip_extension(stored.original_name),
        description=description,
        file_path=stored.stored_name,
        file_name=stored.original_name,
        file_size=stored.size,
        report_date=parsed_date or utcnow(),
    )
    db.add(report)
    await commit_with_stored_file(db, stored)
    await db.refresh(report)

    actor_id = user.id
    response = ReportEnvelope(
        message="Medical report uploaded successfully",
        report=ReportResponse.model_validate(report),
    )
    await log_audit_event(
        db,
        user_id=actor_id,
        action="report.create",
        resource_type="medical_report",
        resource_id=report.id,
        ip_address=request.client.host if request.client else None,
        details={"report_type": report_type, "file_size": stored.size},
    )
    return response


@router.put(
    "/reports/{report_id}",
    response_model=ReportEnvelope,
    dependencies=[Depends(rate_limit(UPLOAD))],
)
async def update_report(
    report_id: UUID,
    request: Request,
    file: UploadFile | None = File(None),
    report_type: str | None = Form(None, alias="reportType"),
    report_sub_type: str | None = Form(None, alias="reportSubType"),
    title: str | None = Form(None),
    description: str | None = Form(None),
    report_date: str | None = Form(None, alias="reportDate"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ReportEnvelope:
    """Partially update a report, optionally replacing its file."""
    _check_report_type(report_type)
    parsed_date = _report_date(report_date)
    if title is not None and not title.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Title must not be empty")

    report = await _load_report(db, report_id, user.family_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")

    changes: dict = {}
    if report_type is not None:
        changes["report_type"] = report_type
    if report_sub_type is not None:
        changes["report_sub_type"] = report_sub_type
    if title is not None:
        changes["title"] = title.strip()
    if description is not None:
        changes["description"] = description
    if parsed_date is not None:
        changes["report_date"] = parsed_date
    has_file = file is not None and bool(file.filename)
    if not changes and not has_file:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide at least one field to update",
        )

    stored = await store_pdf(file) if has_file else None
    replaced_name = report.file_path
    for field, value in changes.items():
        setattr(report, field, value)
    if stored is not None:
        report.file_path = stored.stored_name
        report.file_name = stored.original_name
        report.file_size = stored.size
    await commit_with_stored_file(db, stored, replaced_name)
    await db.refresh(report)

    actor_id = user.id
    response = ReportEnvelope(
        message="Medical report updated successfully",
        report=ReportResponse.model_validate(report),
    )
    await log_audit_event(
        db,
        user_id=actor_id,
        action="report.update",
        resource_type="medical_report",
        resource_id=report_id,
        ip_address=request.client.host if request.client else None,
        details={"fields": sorted(changes), "file_replaced": stored is not None},
    )
    return response


@router.delete("/reports/{report_id}", response_model=MessageResponse)
async def delete_report(
    report_id: UUID,
    request: Request,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Delete a report and its stored file. Admin only."""
    report = await _load_report(db, report_id, user.family_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")

    actor_id = user.id
    stored_name = report.file_path
    await db.delete(report)
    await db.commit()
    delete_stored_file(stored_name)

    await log_audit_event(
        db,
        user_id=actor_id,
        action="report.delete",
        resource_type="medical_report",
        resource_id=report_id,
        ip_address=request.client.host if request.client else None,
    )
    return MessageResponse(message="Medical report deleted successfully")


@router.get("/reports/{report_id}/view")
async def view_report(
    report_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FileResponse:
    """Serve a PDF report inline, e.g. for an iframe."""
    report, file_path = await _report_file(db, report_id, user)
    return FileResponse(
        file_path,
        media_type=PDF_MIME_TYPE,
        filename=report.file_name,
        content_disposition_type="inline",
        headers={"X-Frame-Options": "SAMEORIGIN"},
    )


@router.get("/reports/{report_id}/download")
async def download_report(
    report_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FileResponse:
    """Download a report file as an attachment."""
    report, file_path = await _report_file(db, report_id, user)
    return FileResponse(
        file_path,
        media_type=PDF_MIME_TYPE,
        filename=report.file_name,
    )
