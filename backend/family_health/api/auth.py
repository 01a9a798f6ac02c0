from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.database import get_db
from family_health.dependencies import get_current_user
from family_health.middleware.audit import log_audit_event
from family_health.middleware.rate_limit import AUTH, rate_limit
from family_health.models.user import User
from family_health.schemas.auth import (
    AuthResponse,
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
)
from family_health.services.auth_service import (
    authenticate_user,
    build_user_response,
    issue_token,
    register_family,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(AUTH))],
)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Register a new family account; the registering user becomes its admin."""
    try:
        user = await register_family(
            db,
            email=body.email,
            password=body.password,
            family_name=body.family_name,
            first_name=body.first_name,
            last_name=body.last_name,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    response = AuthResponse(
        message="Family account created successfully",
        user=await build_user_response(db, user),
        token=issue_token(user),
    )
    await log_audit_event(
        db,
        user_id=user.id,
        action="user.register",
        resource_type="user",
        resource_id=user.id,
        ip_address=request.client.host if request.client else None,
    )
    return response


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(rate_limit(AUTH))])
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Authenticate and receive a JWT."""
    try:
        user = await authenticate_user(db, body.email, body.password)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email or password is incorrect",
        )

    response = AuthResponse(
        message="Login successful",
        user=await build_user_response(db, user),
        token=issue_token(user),
    )
    await log_audit_event(
        db,
        user_id=user.id,
        action="user.login",
        resource_type="user",
        resource_id=user.id,
        ip_address=request.client.host if request.client else None,
    )
    return response


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Get current user profile."""
    return ProfileResponse(user=await build_user_response(db, user))
