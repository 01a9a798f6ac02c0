from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from family_health.models.vital import VITAL_TYPES
from family_health.schemas.base import CamelModel, Pagination


def _check_vital_type(v: str | None) -> str | None:
    if v is not None and v not in VITAL_TYPES:
        raise ValueError(f"vitalType must be one of: {', '.join(VITAL_TYPES)}")
    return v


def _strip_unit(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("unit must not be empty")
    return v


def _to_utc(v: datetime | None) -> datetime | None:
    if v is None:
        return v
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


VitalType = Annotated[str, AfterValidator(_check_vital_type)]
Unit = Annotated[str, Field(max_length=50), AfterValidator(_strip_unit)]
RecordedAt = Annotated[datetime, AfterValidator(_to_utc)]


class VitalCreateRequest(CamelModel):
    member_id: UUID
    vital_type: VitalType
    value: float
    unit: Unit
    notes: str | None = None
    recorded_at: RecordedAt | None = None


class VitalUpdateRequest(CamelModel):
    vital_type: VitalType | None = None
    value: float | None = None
    unit: Unit | None = None
    notes: str | None = None
    recorded_at: RecordedAt | None = None


class VitalResponse(BaseModel):
    id: UUID
    member_id: UUID
    vital_type: str
    value: float
    unit: str
    notes: str | None
    recorded_at: datetime
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class VitalListResponse(BaseModel):
    vitals: list[VitalResponse]
    pagination: Pagination


class VitalEnvelope(BaseModel):
    message: str
    vital: VitalResponse


class HistoryPeriod(BaseModel):
    days: int
    from_: datetime = Field(serialization_alias="from")
    to: datetime


class HistoryResponse(BaseModel):
    summary: dict[str, list[dict[str, Any]]]
    recent: dict[str, list[dict[str, Any]]]
    period: HistoryPeriod
