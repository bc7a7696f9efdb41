from .user import User, Organization
from .attendance import AttendanceRecord
from .leave import LeaveRequest
from .notification import Notification, NotificationTemplate
from .audit_log import AuditLog

__all__ = [
    "User", "Organization", "AttendanceRecord", "LeaveRequest",
    "Notification", "NotificationTemplate", "AuditLog"
]
