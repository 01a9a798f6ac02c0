from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from family_health.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

VITAL_TYPES = (
    "height",
    "weight",
    "cholesterol",
    "hemoglobin",
    "sgpt",
    "sgot",
    "vitamin_d",
    "thyroid_tsh",
    "thyroid_t3",
    "thyroid_t4",
    "vitamin_b12",
    "calcium",
    "hba1c",
    "urea",
    "fasting_blood_glucose",
    "creatinine",
)


class HealthVital(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "health_vitals"

    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("family_members.id"), nullable=False
    )
    vital_type: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_health_vitals_member_recorded", "member_id", recorded_at.desc()),
    )
