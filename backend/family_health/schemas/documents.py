from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DocumentResponse(BaseModel):
    id: UUID
    member_id: UUID
    title: str
    description: str | None
    file_path: str
    file_name: str
    file_size: int
    upload_date: datetime
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DocumentEnvelope(BaseModel):
    message: str
    document: DocumentResponse
