from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from family_health.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

REPORT_TYPES = (
    "lab_report",
    "prescription_consultation",
    "vaccination",
    "hospital_records",
)


class MedicalReport(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "medical_reports"

    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("family_members.id"), nullable=False
    )
    report_type: Mapped[str] = mapped_column(Text, nullable=False)
    report_sub_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    report_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_medical_reports_member_date", "member_id", report_date.desc()),
    )
