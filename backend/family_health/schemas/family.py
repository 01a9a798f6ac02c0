from __future__ import annotations

import re
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from family_health.models.user import ROLE_ADMIN, ROLE_MEMBER
from family_health.schemas.base import CamelModel

_MOBILE_NUMBER = re.compile(r"^\d{10}$")


class _MemberFields(CamelModel):
    date_of_birth: date | None = None
    gender: str | None = Field(default=None, max_length=50)
    blood_group: str | None = Field(default=None, max_length=10)
    mobile_number: str | None = None
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=128)

    @field_validator("mobile_number")
    @classmethod
    def validate_mobile_number(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not _MOBILE_NUMBER.match(v):
            raise ValueError("Mobile number must be exactly 10 digits")
        return v


class MemberCreateRequest(_MemberFields):
    name: str = Field(..., min_length=1, max_length=200)
    role: str = ROLE_MEMBER

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v == "non_admin":
            return ROLE_MEMBER
        if v not in (ROLE_ADMIN, ROLE_MEMBER):
            raise ValueError(f"Role must be one of: {ROLE_ADMIN}, {ROLE_MEMBER}")
        return v

    @model_validator(mode="after")
    def login_requires_password(self) -> "MemberCreateRequest":
        if self.email and not self.password:
            raise ValueError("A password is required when an email is given")
        return self


class MemberUpdateRequest(_MemberFields):
    name: str | None = Field(default=None, min_length=1, max_length=200)


class FamilyMemberResponse(BaseModel):
    id: UUID
    family_id: UUID
    user_id: UUID | None
    name: str
    date_of_birth: date | None
    gender: str | None
    blood_group: str | None
    mobile_number: str | None
    user_email: str | None = None
    role: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberListResponse(BaseModel):
    members: list[FamilyMemberResponse]


class MemberEnvelope(BaseModel):
    message: str
    member: FamilyMemberResponse
