from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from family_health.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Family(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "families"

    name: Mapped[str] = mapped_column(Text, nullable=False)

    users: Mapped[list[User]] = relationship("User", back_populates="family")
    members: Mapped[list[FamilyMember]] = relationship("FamilyMember", back_populates="family")


from family_health.models.user import User  # noqa: E402
from family_health.models.member import FamilyMember  # noqa: E402
