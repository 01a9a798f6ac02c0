from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.database import get_db
from family_health.dependencies import (
    get_current_user,
    get_family_member,
    load_family_member,
    require_admin,
)
from family_health.middleware.audit import log_audit_event
from family_health.middleware.rate_limit import UPLOAD, rate_limit
from family_health.models.base import utcnow
from family_health.models.document import Document
from family_health.models.member import FamilyMember
from family_health.models.user import User
from family_health.schemas.base import MessageResponse
from family_health.schemas.documents import DocumentEnvelope, DocumentResponse
from family_health.services.file_storage import (
    PDF_MIME_TYPE,
    commit_with_stored_file,
    delete_stored_file,
    resolve_stored_path,
    store_pdf,
)
from family_health.utils.date_utils import parse_form_datetime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health/documents", tags=["documents"])


def _upload_date(value: str | None):
    try:
        return parse_form_datetime(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(e))


async def _load_document(db: AsyncSession, document_id: UUID, family_id: UUID) -> Document | None:
    result = await db.execute(
        select(Document)
        .join(FamilyMember, Document.member_id == FamilyMember.id)
        .where(Document.id == document_id, FamilyMember.family_id == family_id)
    )
    return result.scalar_one_or_none()


@router.get("/{member_id}", response_model=list[DocumentResponse])
async def list_documents(
    member: FamilyMember = Depends(get_family_member),
    db: AsyncSession = Depends(get_db),
) -> list[DocumentResponse]:
    result = await db.execute(
        select(Document)
        .where(Document.member_id == member.id)
        .order_by(Document.upload_date.desc(), Document.created_at.desc())
    )
    return [DocumentResponse.model_validate(d) for d in result.scalars().all()]


@router.post(
    "/{member_id}",
    response_model=DocumentEnvelope,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(UPLOAD))],
)
async def upload_document(
    member_id: UUID,
    request: Request,
    file: UploadFile | None = File(None),
    title: str = Form(...),
    description: str | None = Form(None),
    upload_date: str | None = Form(None, alias="uploadDate"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentEnvelope:
    """Attach a PDF document to a member of the caller's family."""
    if not title.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Title is required")
    parsed_date = _upload_date(upload_date)
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please upload a file")

    member = await load_family_member(db, member_id, user.family_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only upload documents for your family members",
        )

    stored = await store_pdf(file)
    document = Document(
        member_id=member_id,
        title=title.strip(),
        description=description,
        file_path=stored.stored_name,
        file_name=stored.original_name,
        file_size=stored.size,
        upload_date=parsed_date or utcnow(),
    )
    db.add(document)
    await commit_with_stored_file(db, stored)
    await db.refresh(document)

    actor_id = user.id
    response = DocumentEnvelope(
        message="Document uploaded successfully",
        document=DocumentResponse.model_validate(document),
    )
    await log_audit_event(
        db,
        user_id=actor_id,
        action="document.create",
        resource_type="document",
        resource_id=document.id,
        ip_address=request.client.host if request.client else None,
        details={"file_size": stored.size},
    )
    return response


@router.get("/file/{document_id}")
async def download_document(
    document_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FileResponse:
    document = await _load_document(db, document_id, user.family_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    file_path = resolve_stored_path(document.file_path)
    if file_path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document file does not exist")
    return FileResponse(file_path, media_type=PDF_MIME_TYPE, filename=document.file_name)


@router.put(
    "/{document_id}",
    response_model=DocumentEnvelope,
    dependencies=[Depends(rate_limit(UPLOAD))],
)
async def update_document(
    document_id: UUID,
    request: Request,
    file: UploadFile | None = File(None),
    title: str | None = Form(None),
    description: str | None = Form(None),
    upload_date: str | None = Form(None, alias="uploadDate"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentEnvelope:
    """Partially update a document, optionally replacing its file."""
    if title is not None and not title.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Title must not be empty")
    parsed_date = _upload_date(upload_date)

    document = await _load_document(db, document_id, user.family_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    changes: dict = {}
    if title is not None:
        changes["title"] = title.strip()
    if description is not None:
        changes["description"] = description
    if parsed_date is not None:
        changes["upload_date"] = parsed_date
    has_file = file is not None and bool(file.filename)
    if not changes and not has_file:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide at least one field to update",
        )

    stored = await store_pdf(file) if has_file else None
    replaced_name = document.file_path
    for field, value in changes.items():
        setattr(document, field, value)
    if stored is not None:
        document.file_path = stored.stored_name
        document.file_name = stored.original_name
        document.file_size = stored.size
    await commit_with_stored_file(db, stored, replaced_name)
    await db.refresh(document)

    actor_id = user.id
    response = DocumentEnvelope(
        message="Document updated successfully",
        document=DocumentResponse.model_validate(document),
    )
    await log_audit_event(
        db,
        user_id=actor_id,
        action="document.update",
        resource_type="document",
        resource_id=document_id,
        ip_address=request.client.host if request.client else None,
        details={"fields": sorted(changes), "file_replaced": stored is not None},
    )
    return response


@router.delete("/{document_id}", response_model=MessageResponse)
async def delete_document(
    document_id: UUID,
    request: Request,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Delete a document and its stored file. Admin only."""
    document = await _load_document(db, document_id, user.family_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    actor_id = user.id
    stored_name = document.file_path
    await db.delete(document)
    await db.commit()
    delete_stored_file(stored_name)

    await log_audit_event(
        db,
        user_id=actor_id,
        action="document.delete",
        resource_type="document",
        resource_id=document_id,
        ip_address=request.client.host if request.client else None,
    )
    return MessageResponse(message="Document deleted successfully")
