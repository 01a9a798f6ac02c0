from __future__ import annotations

from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from family_health.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    family_name: str = Field(..., min_length=1, max_length=200)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("family_name", "first_name", "last_name")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field must not be blank")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserResponse(CamelModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    family_id: UUID
    family_name: str | None = None
    role: str


class AuthResponse(CamelModel):
    message: str
    user: UserResponse
    token: str


class ProfileResponse(CamelModel):
    user: UserResponse
