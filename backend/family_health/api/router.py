from __future__ import annotations

from fastapi import APIRouter, Depends

from family_health.api import auth, documents, family, history, reports, vitals
from family_health.middleware.rate_limit import GENERAL, rate_limit

api_router = APIRouter(prefix="/api/v1", dependencies=[Depends(rate_limit(GENERAL))])

api_router.include_router(auth.router)
api_router.include_router(family.router)
api_router.include_router(vitals.router)
api_router.include_router(history.router)
api_router.include_router(reports.router)
api_router.include_router(documents.router)
