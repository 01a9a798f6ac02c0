from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from fastapi import HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.config import settings
from family_health.utils.file_utils import build_stored_name

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF"


@dataclass(frozen=True)
class StoredFile:
    stored_name: str
    original_name: str
    size: int


def get_upload_dir() -> Path:
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def _safe_file_path(upload_dir: Path, stored_name: str) -> Path:
    """Resolve a stored name inside the upload directory, refusing path traversal."""
    file_path = (upload_dir / stored_name).resolve()
    upload_dir_resolved = upload_dir.resolve()
    if file_path.parent != upload_dir_resolved:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid filename")
    return file_path


def _is_pdf_upload(file: UploadFile) -> bool:
    filename = file.filename or ""
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    return Path(filename).suffix.lower() == ".pdf" and content_type == PDF_MIME_TYPE


async def store_pdf(file: UploadFile) -> StoredFile:
    """Validate an uploaded PDF and write it to the upload directory."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")
    if not _is_pdf_upload(file):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only PDF files are allowed")

    content = await file.read()
    if len(content) > settings.max_file_size_mb * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File too large. Maximum size: {settings.max_file_size_mb}MB",
        )
    if not content.startswith(PDF_MAGIC):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File content does not match a PDF",
        )

    upload_dir = get_upload_dir()
    stored_name = build_stored_name(file.filename)
    file_path = _safe_file_path(upload_dir, stored_name)
    with open(file_path, "wb") as f:
        f.write(content)

    logger.info("Stored upload %s (%d bytes)", stored_name, len(content))
    return StoredFile(stored_name=stored_name, original_name=file.filename, size=len(content))


def resolve_stored_path(stored_name: str) -> Path | None:
    """Return the on-disk path of a stored file, or None if it is missing."""
    try:
        file_path = _safe_file_path(Path(settings.upload_dir), stored_name)
    except HTTPException:
        logger.warning("Refusing to resolve stored file outside upload dir: %s", stored_name)
        return None
    return file_path if file_path.is_file() else None


def delete_stored_file(stored_name: str | None) -> bool:
    """Remove a stored file. Failures are logged, never raised."""
    if not stored_name:
        return False
    file_path = resolve_stored_path(stored_name)
    if file_path is None:
        return False
    try:
        file_path.unlink()
    except OSError:
        logger.warning("Failed to delete stored file %s", stored_name, exc_info=True)
        return False
    return True


async def commit_with_stored_file(
    db: AsyncSession,
    new_file: StoredFile | None,
    replaced_name: str | None = None,
) -> None:
    """Commit pending row changes that reference ``new_file``.

    On failure the session is rolled back and the freshly stored file is
    removed. The replaced file is only removed once the commit succeeded.
    """
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        if new_file is not None:
            delete_stored_file(new_file.stored_name)
        raise

    if new_file is not None and replaced_name and replaced_name != new_file.stored_name:
        delete_stored_file(replaced_name)
