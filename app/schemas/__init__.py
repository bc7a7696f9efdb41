from .common import CamelModel, ErrorResponse, MessageResponse
from .attendance import (
    CheckInRequest, BreakRequest, CheckOutRequest,
    AttendanceResponse, AttendanceSummary, AttendanceHistory
)
from .leave import LeaveCreate, LeaveResponse
from .notification import (
    NotificationResponse, NotificationStats, SystemAlertRequest,
    TemplateCreate, TemplateUpdate, TemplateResponse
)
from .audit import AuditLogResponse

__all__ = [
    "CamelModel", "ErrorResponse", "MessageResponse",
    "CheckInRequest", "BreakRequest", "CheckOutRequest",
    "AttendanceResponse", "AttendanceSummary", "AttendanceHistory",
    "LeaveCreate", "LeaveResponse",
    "NotificationResponse", "NotificationStats", "SystemAlertRequest",
    "TemplateCreate", "TemplateUpdate", "TemplateResponse",
    "AuditLogResponse"
]
