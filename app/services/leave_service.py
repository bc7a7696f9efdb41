"""
Leave request service layer.
"""

import logging
from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from app.config import settings
from app.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.models.user import User
from app.models.leave import LeaveRequest
from app.services.audit_service import create_audit_log, log_status_change
from app.services.notification_dispatcher import NotificationDispatcher, NotificationJob
from app.services.notification_service import OrganizationAdmins
from app.utils.validators import DataValidator, ensure_valid, sanitize_input
from app.utils.datetime_utils import format_date, get_today

logger = logging.getLogger(__name__)

LEAVE_STATUSES = ("pending", "approved", "rejected", "cancelled")
ACTIVE_LEAVE_STATUSES = ("pending", "approved")


class LeaveService:
    """請假業務邏輯服務"""

    def __init__(self, db: Session, notifier: Optional[NotificationDispatcher] = None, timezone_str: str = None):
        self.db = db
        self.notifier = notifier
        self.timezone_str = timezone_str or settings.TIMEZONE
        self.validator = DataValidator()

    def submit_request(
        self,
        employee: User,
        leave_type: str,
        start_date: date,
        end_date: date,
        reason: str,
        today: date = None
    ) -> LeaveRequest:
        """
        提交請假申請。

        Args:
            employee: 申請人
            leave_type: 假別
            start_date: 開始日期
            end_date: 結束日期（可與開始日期相同）
            reason: 請假原因
            today: 參考日期（可選，默認參考時區的今天）

        Returns:
            新建立的 pending 請假申請

        Raises:
            ValidationError: 資料驗證失敗
            ConflictError: 與現有申請期間重疊
        """
        today = today or get_today(self.timezone_str)
        ensure_valid(*self.validator.validate_leave_data({
            "leave_type": leave_type,
            "start_date": start_date,
            "end_date": end_date,
            "reason": reason,
        }, today))

        overlapping = self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == employee.id,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date
        ).first()
        if overlapping:
            raise ConflictError("You already have a leave request for this period", error="Overlapping request")

        leave_request = LeaveRequest(
            employee_id=employee.id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            reason=sanitize_input(reason),
            status="pending"
        )
        self.db.add(leave_request)
        self.db.commit()
        self.db.refresh(leave_request)

        logger.info(f"Leave request {leave_request.id} submitted by employee {employee.id}")

        create_audit_log(
            self.db,
            action="Leave Requested",
            resource="leave_request",
            resource_id=leave_request.id,
            user_id=employee.id,
            details={"start_date": format_date(start_date), "end_date": format_date(end_date), "leave_type": leave_type},
            organization_id=employee.organization_id
        )

        if self.notifier is not None:
            self.notifier.submit(NotificationJob(
                trigger_event="leave_requested",
                scope=OrganizationAdmins(employee.organization_id),
                organization_id=employee.organization_id,
                variables={
                    "employeeName": employee.full_name,
                    "leaveType": leave_type,
                    "startDate": format_date(start_date),
                    "endDate": format_date(end_date),
                    "days": (end_date - start_date).days + 1,
                    "reason": leave_request.reason,
                }
            ))

        return leave_request

    def list_requests(
        self,
        employee_id: int,
        status: Optional[str] = None,
        year: Optional[int] = None
    ) -> List[LeaveRequest]:
        """取得員工的請假申請（新到舊），可依狀態與年份篩選"""
        if status and status not in LEAVE_STATUSES:
            raise ValidationError(f"Invalid leave status: {status}")

        query = self.db.query(LeaveRequest).filter(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.filter(LeaveRequest.status == status)
        if year:
            query = query.filter(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date <= date(year, 12, 31)
            )

        return query.order_by(desc(LeaveRequest.created_at), desc(LeaveRequest.id)).all()

    def cancel_request(self, employee: User, request_id: int) -> LeaveRequest:
        """
        取消請假申請，只有 pending 狀態可以取消。

        Raises:
            NotFoundError: 申請不存在或不屬於該員工
            InvalidStateError: 申請已非 pending
        """
        leave_request = self.db.query(LeaveRequest).filter(
            LeaveRequest.id == request_id,
            LeaveRequest.employee_id == employee.id
        ).first()
        if not leave_request:
            raise NotFoundError("Leave request not found")

        if leave_request.status != "pending":
            raise InvalidStateError(
                f"Only pending leave requests can be cancelled (current status: {leave_request.status})",
                error="Cannot cancel request"
            )

        leave_request.status = "cancelled"
        self.db.commit()
        self.db.refresh(leave_request)

        logger.info(f"Leave request {request_id} cancelled by employee {employee.id}")
        log_status_change(
            self.db,
            resource="leave_request",
            resource_id=leave_request.id,
            old_status="pending",
            new_status="cancelled",
            user_id=employee.id,
            organization_id=employee.organization_id
        )
        return leave_request
