"""
Notification API routes: inbox, statistics, retry sweep and system alerts.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import InvalidStateError
from app.models.user import User
from app.schemas.notification import NotificationResponse, NotificationStats, SystemAlertRequest
from app.utils.auth import get_current_active_user, get_current_admin_user
from app.utils.validators import validate_pagination_params
from app.services.audit_service import create_audit_log
from app.services.notification_service import NotificationService, ExplicitUsers, OrganizationAdmins
from app.services.notification_dispatcher import NotificationDispatcher, NotificationJob
from app.api.deps import get_dispatcher, envelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _require_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> NotificationDispatcher:
    if dispatcher is None:
        raise InvalidStateError("Notification dispatcher is not running", error="Dispatcher unavailable")
    return dispatcher


@router.get("", summary="取得我的通知")
async def get_my_notifications(
    status: Optional[str] = Query(None, description="狀態篩選 pending / sent / failed"),
    skip: int = Query(0, ge=0, description="跳過的記錄數"),
    limit: int = Query(50, ge=1, le=100, description="返回的記錄數"),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    skip, limit = validate_pagination_params(skip, limit)
    service = NotificationService(db)
    notifications = service.list_user_notifications(current_user.id, status=status, skip=skip, limit=limit)
    return envelope(
        [NotificationResponse.model_validate(n) for n in notifications],
        "Notifications retrieved successfully"
    )


@router.get("/stats", summary="取得通知統計")
async def get_notification_stats(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    service = NotificationService(db)
    stats = service.get_stats(current_user.organization_id)
    return envelope(NotificationStats(**stats), "Notification statistics retrieved successfully")


@router.post("/process-pending", summary="重試未送達的通知")
async def process_pending_notifications(
    current_user: User = Depends(get_current_admin_user),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher)
):
    result = await _require_dispatcher(dispatcher).process_pending()
    return envelope(result, "Pending notifications processed")


@router.get("/dispatcher", summary="取得通知派送器狀態")
async def get_dispatcher_status(
    current_user: User = Depends(get_current_admin_user),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher)
):
    return envelope(_require_dispatcher(dispatcher).status(), "Dispatcher status retrieved successfully")


@router.post("/system-alert", summary="發送系統警示")
async def send_system_alert(
    payload: SystemAlertRequest,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher)
):
    """
    發送系統警示。

    - 指定 userIds 時只發送給這些用戶
    - 否則發送給組織內所有管理員
    """
    dispatcher = _require_dispatcher(dispatcher)

    if payload.user_ids:
        scope = ExplicitUsers(tuple(payload.user_ids), organization_id=current_user.organization_id)
    else:
        scope = OrganizationAdmins(current_user.organization_id)

    result = await dispatcher.dispatch(NotificationJob(
        template_key="system_alert",
        scope=scope,
        organization_id=current_user.organization_id,
        variables={"title": payload.title, "message": payload.message}
    ))

    create_audit_log(
        db,
        action="System Alert Sent",
        resource="notification",
        user_id=current_user.id,
        details={"title": payload.title, "sent": result.sent, "total": result.total},
        organization_id=current_user.organization_id,
        severity="warning"
    )

    return envelope(result.to_dict(), result.message)
