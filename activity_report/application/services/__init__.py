"""Application services."""

from activity_report.application.services.access_service import AccessControlService
from activity_report.application.services.auth_service import AuthService
from activity_report.application.services.preview_service import LinkPreviewService
from activity_report.application.services.report_service import ReportService

__all__ = [
    "AccessControlService",
    "AuthService",
    "LinkPreviewService",
    "ReportService",
]
