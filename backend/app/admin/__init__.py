"""Back-office management of users, catalog content and integrations."""

from .models import (
    AdminUser,
    BulkFailure,
    BulkResult,
    DriveConfig,
    EmailConfig,
    ExternalService,
    parse_service_account_key,
)
from .repository import PostgresAdminRepository
from .service import AdminRepository, AdminService, PlanProvisioner

__all__ = [
    "AdminRepository",
    "AdminService",
    "AdminUser",
    "BulkFailure",
    "BulkResult",
    "DriveConfig",
    "EmailConfig",
    "ExternalService",
    "PlanProvisioner",
    "PostgresAdminRepository",
    "parse_service_account_key",
]
