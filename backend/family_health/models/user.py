from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from family_health.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    family_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("families.id"), nullable=False
    )
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, default=ROLE_MEMBER, server_default=ROLE_MEMBER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")

    family: Mapped[Family] = relationship("Family", back_populates="users")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


from family_health.models.family import Family  # noqa: E402
