from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from family_health.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class FamilyMember(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "family_members"

    family_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("families.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(Text, nullable=True)
    blood_group: Mapped[str | None] = mapped_column(Text, nullable=True)
    mobile_number: Mapped[str | None] = mapped_column(Text, nullable=True)

    family: Mapped[Family] = relationship("Family", back_populates="members")
    user: Mapped[User | None] = relationship("User")

    __table_args__ = (
        Index("idx_family_members_family", "family_id"),
    )


from family_health.models.family import Family  # noqa: E402
from family_health.models.user import User  # noqa: E402
