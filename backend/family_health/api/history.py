from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from family_health.database import get_db
from family_health.dependencies import get_own_or_admin_member
from family_health.models.member import FamilyMember
from family_health.models.report import MedicalReport
from family_health.models.vital import HealthVital
from family_health.schemas.vitals import HistoryPeriod, HistoryResponse

router = APIRouter(prefix="/health", tags=["history"])


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@router.get("/history/{member_id}", response_model=HistoryResponse)
async def get_health_history(
    days: int = Query(30, ge=1, le=3650),
    member: FamilyMember = Depends(get_own_or_admin_member),
    db: AsyncSession = Depends(get_db),
) -> HistoryResponse:
    """Per-type vitals and report aggregates for the last ``days`` days, plus recent entries."""
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days)

    vitals_result = await db.execute(
        select(
            HealthVital.vital_type,
            func.count(),
            func.avg(HealthVital.value),
            func.min(HealthVital.value),
            func.max(HealthVital.value),
            func.min(HealthVital.recorded_at),
            func.max(HealthVital.recorded_at),
        )
        .where(HealthVital.member_id == member.id, HealthVital.recorded_at >= cutoff)
        .group_by(HealthVital.vital_type)
        .order_by(HealthVital.vital_type)
    )
    vitals_summary = [
        {
            "vital_type": row[0],
            "count": row[1],
            "avg_value": float(row[2]) if row[2] is not None else None,
            "min_value": row[3],
            "max_value": row[4],
            "first_recorded": _iso(row[5]),
            "last_recorded": _iso(row[6]),
        }
        for row in vitals_result.all()
    ]

    reports_result = await db.execute(
        select(
            MedicalReport.report_type,
            func.count(),
            func.min(MedicalReport.report_date),
            func.max(MedicalReport.report_date),
        )
        .where(MedicalReport.member_id == member.id, MedicalReport.report_date >= cutoff)
        .group_by(MedicalReport.report_type)
        .order_by(MedicalReport.report_type)
    )
    reports_summary = [
        {
            "report_type": row[0],
            "count": row[1],
            "first_report": _iso(row[2]),
            "last_report": _iso(row[3]),
        }
        for row in reports_result.all()
    ]

    recent_vitals_result = await db.execute(
        select(HealthVital)
        .where(HealthVital.member_id == member.id)
        .order_by(HealthVital.recorded_at.desc())
        .limit(10)
    )
    recent_vitals = [
        {
            "vital_type": v.vital_type,
            "value": v.value,
            "unit": v.unit,
            "recorded_at": _iso(v.recorded_at),
        }
        for v in recent_vitals_result.scalars().all()
    ]

    recent_reports_result = await db.execute(
        select(MedicalReport)
        .where(MedicalReport.member_id == member.id)
        .order_by(MedicalReport.report_date.desc())
        .limit(5)
    )
    recent_reports = [
        {
            "report_type": r.report_type,
            "title": r.title,
            "report_date": _iso(r.report_date),
        }
        for r in recent_reports_result.scalars().all()
    ]

    return HistoryResponse(
        summary={"vitals": vitals_summary, "reports": reports_summary},
        recent={"vitals": recent_vitals, "reports": recent_reports},
        period=HistoryPeriod(days=days, from_=cutoff, to=now),
    )
