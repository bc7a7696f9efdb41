"""
Attendance service layer for the daily check-in / break / check-out lifecycle.
"""

import logging
from datetime import datetime, date
from typing import Callable, Dict, Iterator, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import desc

from app.config import settings
from app.exceptions import ConflictError, InternalError, InvalidStateError, ValidationError
from app.models.user import User
from app.models.attendance import AttendanceRecord
from app.schemas.attendance import AttendanceStatus
from app.services.notification_dispatcher import NotificationDispatcher, NotificationJob
from app.services.notification_service import OrganizationAdmins
from app.utils.validators import DataValidator, ensure_valid
from app.utils.datetime_utils import (
    ensure_utc,
    format_date,
    format_time,
    is_after_cutoff,
    local_date,
    minutes_to_hours,
    round_half_up,
    round_minutes,
    utc_now,
)

logger = logging.getLogger(__name__)


class AttendanceService:
    """出勤業務邏輯服務"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        timezone_str: str = None
    ):
        self.db = db
        self.notifier = notifier
        self.timezone_str = timezone_str or settings.TIMEZONE
        self.validator = DataValidator()

    def get_today(self, employee_id: int, now: datetime = None) -> Optional[AttendanceRecord]:
        """取得員工今日的出勤記錄，沒有則返回 None"""
        today = local_date(ensure_utc(now or utc_now()), self.timezone_str)
        return self._get_record(employee_id, today)

    def check_in(
        self,
        employee_id: int,
        now: datetime = None,
        work_location: str = "office",
        location: str = None,
        notes: str = None,
        latitude: float = None,
        longitude: float = None
    ) -> AttendanceRecord:
        """
        上班打卡。

        Args:
            employee_id: 員工 ID
            now: 打卡時間（可選，默認當前時間）
            work_location: 工作地點 office / remote
            location: 地點描述
            notes: 備註
            latitude: 緯度
            longitude: 經度

        Returns:
            今日出勤記錄

        Raises:
            ValidationError: 輸入資料不正確
            ConflictError: 今日已打過上班卡
        """
        work_location = work_location or "office"
        ensure_valid(*self.validator.validate_check_in_data({
            "work_location": work_location,
            "latitude": latitude,
            "longitude": longitude,
            "notes": notes,
        }))

        now = ensure_utc(now or utc_now())
        today = local_date(now, self.timezone_str)

        if work_location == "remote":
            status = AttendanceStatus.REMOTE.value
        elif is_after_cutoff(now, settings.LATE_CUTOFF_HOUR, settings.LATE_CUTOFF_MINUTE, self.timezone_str):
            status = AttendanceStatus.LATE.value
        else:
            status = AttendanceStatus.PRESENT.value

        def apply(record: Optional[AttendanceRecord]) -> AttendanceRecord:
            if record is not None and record.check_in_at is not None:
                raise ConflictError("You have already checked in today", error="Already checked in")

            if record is None:
                record = AttendanceRecord(employee_id=employee_id, date=today)
                self.db.add(record)

            # 沒有上班時間的既有記錄直接覆寫
            record.check_in_at = now
            record.check_out_at = None
            record.break_start_at = None
            record.break_end_at = None
            record.break_duration = 0
            record.work_hours = 0
            record.overtime = 0
            record.status = status
            record.work_location = work_location
            record.location = location or ""
            record.latitude = latitude
            record.longitude = longitude
            record.notes = notes or ""
            return record

        record = self._save(employee_id, today, apply, "check-in")
        logger.info(f"Employee {employee_id} checked in at {format_time(now, self.timezone_str)} ({status})")

        if status == AttendanceStatus.LATE.value:
            self._notify_late(record)

        return record

    def start_break(self, employee_id: int, now: datetime = None, notes: str = None) -> AttendanceRecord:
        """
        開始休息。

        Raises:
            InvalidStateError: 尚未上班打卡、已下班或已在休息中
        """
        ensure_valid(*self.validator.validate_check_in_data({"notes": notes}))

        now = ensure_utc(now or utc_now())
        today = local_date(now, self.timezone_str)

        def apply(record: Optional[AttendanceRecord]) -> AttendanceRecord:
            self._require_checked_in(record, "You must check in before starting a break")
            if record.check_out_at is not None:
                raise InvalidStateError("Cannot start break after checking out", error="Already checked out")
            if record.on_break:
                raise InvalidStateError("You are already on a break", error="Already on break")

            record.break_start_at = now
            record.break_end_at = None
            record.status = AttendanceStatus.ON_BREAK.value
            self._append_note(record, "Break start", notes)
            return record

        record = self._save(employee_id, today, apply, "break start")
        logger.info(f"Employee {employee_id} started break at {format_time(now, self.timezone_str)}")
        return record

    def end_break(self, employee_id: int, now: datetime = None, notes: str = None) -> AttendanceRecord:
        """
        結束休息，休息分鐘數累加至 break_duration。

        Raises:
            InvalidStateError: 尚未上班打卡或沒有進行中的休息
        """
        ensure_valid(*self.validator.validate_check_in_data({"notes": notes}))

        now = ensure_utc(now or utc_now())
        today = local_date(now, self.timezone_str)

        def apply(record: Optional[AttendanceRecord]) -> AttendanceRecord:
            self._require_checked_in(record, "You must check in before ending a break")
            if not record.on_break:
                raise InvalidStateError("You are not currently on a break", error="Not on break")

            self._close_break(record, now)
            self._append_note(record, "Break end", notes)
            return record

        record = self._save(employee_id, today, apply, "break end")
        logger.info(f"Employee {employee_id} ended break, total break {record.break_duration} minutes")
        return record

    def check_out(
        self,
        employee_id: int,
        now: datetime = None,
        overtime: float = 0,
        notes: str = None
    ) -> AttendanceRecord:
        """
        下班打卡並計算工時。

        進行中的休息會先以結束休息的方式結算。工時 = (下班 - 上班) 分鐘 - 休息分鐘，
        換算為小時保留一位小數；出勤狀態為 present 且工時低於門檻時改為 half-day。

        Raises:
            InvalidStateError: 尚未上班打卡
            ConflictError: 今日已打過下班卡
        """
        overtime = overtime or 0
        ensure_valid(*self.validator.validate_check_out_data({"overtime": overtime, "notes": notes}))

        now = ensure_utc(now or utc_now())
        today = local_date(now, self.timezone_str)

        def apply(record: Optional[AttendanceRecord]) -> AttendanceRecord:
            self._require_checked_in(record, "You must check in before checking out")
            if record.check_out_at is not None:
                raise ConflictError("You have already checked out today", error="Already checked out")

            check_in_at = ensure_utc(record.check_in_at)
            if now <= check_in_at:
                raise InvalidStateError("Check-out time must be after check-in time")

            if record.on_break:
                self._close_break(record, now)

            total_minutes = round_minutes(now - check_in_at)
            work_minutes = total_minutes - (record.break_duration or 0)

            record.check_out_at = now
            record.work_hours = minutes_to_hours(work_minutes)
            record.overtime = overtime

            if record.work_hours < settings.HALF_DAY_THRESHOLD_HOURS and record.status == AttendanceStatus.PRESENT.value:
                record.status = AttendanceStatus.HALF_DAY.value

            self._append_note(record, "Check-out", notes)
            return record

        record = self._save(employee_id, today, apply, "check-out")
        logger.info(
            f"Employee {employee_id} checked out at {format_time(now, self.timezone_str)}, "
            f"{record.work_hours} hours ({record.status})"
        )
        return record

    def iter_history(
        self,
        employee_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Iterator[AttendanceRecord]:
        """
        依日期新到舊逐筆取得出勤記錄，最多 ATTENDANCE_HISTORY_LIMIT 筆。

        每次呼叫都返回新的迭代器，查詢在開始迭代時才執行。

        Raises:
            ValidationError: 開始日期晚於結束日期
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError("startDate must be on or before endDate")

        query = self.db.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee_id)
        if start_date:
            query = query.filter(AttendanceRecord.date >= start_date)
        if end_date:
            query = query.filter(AttendanceRecord.date <= end_date)

        query = query.order_by(desc(AttendanceRecord.date)).limit(settings.ATTENDANCE_HISTORY_LIMIT)
        return self._iterate(query)

    @staticmethod
    def _iterate(query) -> Iterator[AttendanceRecord]:
        for record in query:
            yield record

    def history(
        self,
        employee_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict:
        """
        取得出勤歷史與統計摘要。

        Returns:
            {"records": [...], "summary": {...}}
        """
        records = list(self.iter_history(employee_id, start_date, end_date))
        return {
            "records": records,
            "summary": self.summarize(records)
        }

    @staticmethod
    def summarize(records: List[AttendanceRecord]) -> Dict:
        """計算出勤統計"""
        total_days = len(records)
        present_days = sum(1 for r in records if r.check_in_at is not None)
        total_hours = sum(r.work_hours or 0 for r in records)
        total_break_time = sum(r.break_duration or 0 for r in records)
        average_hours = total_hours / total_days if total_days > 0 else 0

        return {
            "total_days": total_days,
            "present_days": present_days,
            "absent_days": total_days - present_days,
            "total_hours": round_half_up(total_hours, 2),
            "total_break_time": int(round_half_up(total_break_time)),
            "average_hours": round_half_up(average_hours, 2),
        }

    def _get_record(self, employee_id: int, day: date) -> Optional[AttendanceRecord]:
        return self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == day
        ).first()

    def _save(
        self,
        employee_id: int,
        day: date,
        apply: Callable[[Optional[AttendanceRecord]], AttendanceRecord],
        action: str
    ) -> AttendanceRecord:
        """
        載入當日記錄、套用變更並提交。

        版本衝突時重新載入並重新驗證狀態，再試一次；仍衝突則拋出 ConflictError。
        """
        for attempt in range(2):
            record = apply(self._get_record(employee_id, day))
            try:
                self.db.commit()
                self.db.refresh(record)
                return record
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Concurrent update on attendance of employee {employee_id} during {action} "
                    f"(attempt {attempt + 1})"
                )
            except IntegrityError:
                self.db.rollback()
                raise ConflictError("You have already checked in today", error="Already checked in")
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to record {action} for employee {employee_id}: {str(e)}")
                raise InternalError(f"Failed to record {action}", error=f"Failed to record {action}")

        raise ConflictError(
            "Attendance record was modified concurrently, please retry",
            error="Concurrent update"
        )

    @staticmethod
    def _require_checked_in(record: Optional[AttendanceRecord], message: str):
        if record is None or record.check_in_at is None:
            raise InvalidStateError(message, error="Not checked in")

    @staticmethod
    def _close_break(record: AttendanceRecord, now: datetime):
        elapsed = round_minutes(now - ensure_utc(record.break_start_at))
        record.break_duration = (record.break_duration or 0) + elapsed
        # 清除休息時間以便再次休息
        record.break_start_at = None
        record.break_end_at = None
        record.status = AttendanceStatus.PRESENT.value

    @staticmethod
    def _append_note(record: AttendanceRecord, label: str, notes: Optional[str]):
        if notes:
            record.notes = f"{record.notes or ''} | {label}: {notes}"

    def _notify_late(self, record: AttendanceRecord):
        """通知組織管理員員工遲到"""
        if self.notifier is None:
            return

        employee = self.db.query(User).filter(User.id == record.employee_id).first()
        if not employee:
            return

        self.notifier.submit(NotificationJob(
            trigger_event="attendance_late",
            scope=OrganizationAdmins(employee.organization_id),
            organization_id=employee.organization_id,
            variables={
                "employeeName": employee.full_name,
                "employeeEmail": employee.email,
                "checkInTime": format_time(record.check_in_at, self.timezone_str),
                "date": format_date(record.date),
                "workLocation": record.work_location,
            }
        ))
