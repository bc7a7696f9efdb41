"""
Employee self-service leave request API.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.leave import LeaveCreate, LeaveResponse, LeaveStatus
from app.utils.auth import get_current_active_user
from app.services.leave_service import LeaveService
from app.services.notification_dispatcher import NotificationDispatcher
from app.api.deps import get_dispatcher, envelope

router = APIRouter(prefix="/leave-requests", tags=["leave"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="提交請假申請")
async def submit_leave_request(
    payload: LeaveCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher)
):
    """
    提交請假申請。

    - 開始日期不可早於今天，期間最長 365 天
    - 與 pending / approved 申請重疊返回 409
    - 通知組織管理員
    """
    service = LeaveService(db, notifier=dispatcher)
    leave_request = service.submit_request(
        current_user,
        leave_type=payload.leave_type.value,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason
    )
    return envelope(LeaveResponse.model_validate(leave_request), "Leave request submitted successfully")


@router.get("", summary="取得請假申請")
async def get_leave_requests(
    status_filter: Optional[LeaveStatus] = Query(None, alias="status", description="狀態篩選"),
    year: Optional[int] = Query(None, ge=1970, le=9999, description="年份篩選"),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    service = LeaveService(db)
    requests = service.list_requests(
        current_user.id,
        status=status_filter.value if status_filter else None,
        year=year
    )
    return envelope(
        [LeaveResponse.model_validate(r) for r in requests],
        "Leave requests retrieved successfully"
    )


@router.post("/{request_id}/cancel", summary="取消請假申請")
async def cancel_leave_request(
    request_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    service = LeaveService(db)
    leave_request = service.cancel_request(current_user, request_id)
    return envelope(LeaveResponse.model_validate(leave_request), "Leave request cancelled successfully")
