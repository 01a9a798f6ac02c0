from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from family_health.schemas.base import Pagination


class ReportResponse(BaseModel):
    id: UUID
    member_id: UUID
    report_type: str
    report_sub_type: str | None
    title: str
    description: str | None
    file_path: str
    file_name: str
    file_size: int
    report_date: datetime
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ReportListResponse(BaseModel):
    reports: list[ReportResponse]
    pagination: Pagination


class ReportEnvelope(BaseModel):
    message: str
    report: ReportResponse
