# =============================================================================
# assessment_core/services/__init__.py
# Service Layer for the Skill Assessment sync core
# Turns user-level actions into granular remote writes
# =============================================================================
"""
Service Layer

Usage Example:
-------------
    from assessment_core.services import HospitalService, MutationGateway

    gateway = MutationGateway(remote_store)
    service = HospitalService(gateway, attachments)

    result = await service.save_assessment(staff, "فروردین", 1403, categories)
    if not result:
        print(result.error)

    # Multi-row writes that failed part-way
    await service.retry_pending()

Writes never patch the local tree; the change listener's refresh does.
"""

from .base_service import BaseService, ServiceResult
from .mutation_gateway import MutationGateway
from .unit_of_work import UnitOfWork, WriteStep
from .hospital_service import HospitalService
from .backup_service import BackupService, BACKUP_TYPE
from .reporting import (
    PERSIAN_MONTHS,
    available_years,
    assessment_frame,
    monthly_summary,
    staff_summary,
)

__all__ = [
    # Base
    "BaseService",
    "ServiceResult",
    # Writes
    "MutationGateway",
    "UnitOfWork",
    "WriteStep",
    # Business operations
    "HospitalService",
    "BackupService",
    "BACKUP_TYPE",
    # Reporting
    "PERSIAN_MONTHS",
    "available_years",
    "assessment_frame",
    "monthly_summary",
    "staff_summary",
]
