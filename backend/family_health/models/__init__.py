from __future__ import annotations

from family_health.models.family import Family
from family_health.models.user import User
from family_health.models.member import FamilyMember
from family_health.models.vital import HealthVital
from family_health.models.report import MedicalReport
from family_health.models.document import Document
from family_health.models.audit import AuditLog

__all__ = [
    "Family",
    "User",
    "FamilyMember",
    "HealthVital",
    "MedicalReport",
    "Document",
    "AuditLog",
]
