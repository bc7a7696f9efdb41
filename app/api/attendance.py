"""
Employee self-service attendance API: check-in, breaks, check-out and history.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.attendance import (
    CheckInRequest,
    BreakRequest,
    CheckOutRequest,
    AttendanceResponse,
    AttendanceSummary,
)
from app.utils.auth import get_current_active_user
from app.services.attendance_service import AttendanceService
from app.services.notification_dispatcher import NotificationDispatcher
from app.api.deps import get_dispatcher, envelope

router = APIRouter(prefix="/attendance", tags=["attendance"])


def _record(record) -> Optional[AttendanceResponse]:
    return AttendanceResponse.model_validate(record) if record is not None else None


@router.post("/check-in", status_code=status.HTTP_201_CREATED, summary="上班打卡")
async def check_in(
    payload: CheckInRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher)
):
    """
    上班打卡。

    - 遠端工作狀態為 remote
    - 辦公室打卡晚於 09:15 狀態為 late，並通知組織管理員
    - 今日已打卡返回 409
    """
    service = AttendanceService(db, notifier=dispatcher)
    record = service.check_in(
        current_user.id,
        work_location=payload.work_location.value,
        location=payload.location,
        notes=payload.notes,
        latitude=payload.latitude,
        longitude=payload.longitude
    )
    return envelope(_record(record), "Check-in recorded successfully")


@router.post("/break-start", summary="開始休息")
async def start_break(
    payload: BreakRequest = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    service = AttendanceService(db)
    record = service.start_break(current_user.id, notes=payload.notes if payload else None)
    return envelope(_record(record), "Break started successfully")


@router.post("/break-end", summary="結束休息")
async def end_break(
    payload: BreakRequest = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    service = AttendanceService(db)
    record = service.end_break(current_user.id, notes=payload.notes if payload else None)
    return envelope(_record(record), "Break ended successfully")


@router.post("/check-out", summary="下班打卡")
async def check_out(
    payload: CheckOutRequest = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """
    下班打卡並計算工時。

    - 尚未上班打卡返回 400
    - 今日已下班打卡返回 409
    - 休息中會先結束休息
    """
    payload = payload or CheckOutRequest()
    service = AttendanceService(db)
    record = service.check_out(current_user.id, overtime=payload.overtime, notes=payload.notes)
    return envelope(_record(record), "Check-out recorded successfully")


@router.get("/today", summary="取得今日出勤")
async def get_today_attendance(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    service = AttendanceService(db)
    record = service.get_today(current_user.id)
    return envelope(_record(record), "Today's attendance retrieved successfully")


@router.get("/history", summary="取得出勤歷史")
async def get_attendance_history(
    start_date: Optional[date] = Query(None, alias="startDate", description="開始日期"),
    end_date: Optional[date] = Query(None, alias="endDate", description="結束日期"),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """
    取得出勤歷史（新到舊，最多 100 筆）與統計摘要。
    """
    service = AttendanceService(db)
    history = service.history(current_user.id, start_date, end_date)
    return envelope(
        {
            "records": [_record(record) for record in history["records"]],
            "summary": AttendanceSummary(**history["summary"]),
        },
        "Attendance history retrieved successfully"
    )
