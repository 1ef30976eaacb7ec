# Services package
from app.services.audit_service import audit_service
from app.services.job_service import job_service
from app.services.settings_service import settings_service

__all__ = [
    "audit_service",
    "job_service",
    "settings_service",
]
