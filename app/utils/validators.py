import re
from datetime import date
from typing import Optional

from app.exceptions import ValidationError


def validate_email(email: str) -> bool:
    """驗證 Email 格式"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def validate_note_length(note: str) -> bool:
    """驗證備註長度"""
    if note is None:
        return True
    return len(note) <= 500


def validate_work_location(work_location: str) -> bool:
    """驗證工作地點"""
    return work_location in ['office', 'remote']


def validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> bool:
    """驗證經緯度"""
    if latitude is not None and not -90 <= latitude <= 90:
        return False
    if longitude is not None and not -180 <= longitude <= 180:
        return False
    return True


def validate_overtime(overtime: float) -> bool:
    """驗證加班時數"""
    return 0 <= overtime <= 24


def validate_leave_reason(reason: str) -> bool:
    """驗證請假原因"""
    if reason is None or len(reason.strip()) == 0:
        return False

    return len(reason) <= 500


def validate_leave_type(leave_type: str) -> bool:
    """驗證請假類型"""
    valid_types = [
        'vacation',
        'sick',
        'personal',
        'emergency',
        'maternity',
        'paternity',
        'bereavement',
        'unpaid',
        'compensatory'
    ]
    return leave_type in valid_types


def validate_date_range(start_date: date, end_date: date, max_days: int = None) -> bool:
    """驗證日期範圍"""
    if start_date > end_date:
        return False

    if max_days is not None and (end_date - start_date).days > max_days:
        return False

    return True


def validate_notification_channel(channel: str) -> bool:
    """驗證通知渠道"""
    return channel in ['email', 'system']


def sanitize_input(text: str) -> str:
    """清理輸入文字"""
    if not text:
        return ""

    # 移除前後空白
    text = text.strip()

    # 移除多餘的空白字符
    text = re.sub(r'\s+', ' ', text)

    return text


def validate_pagination_params(skip: int, limit: int, max_limit: int = 100) -> tuple:
    """驗證並修正分頁參數"""
    skip = max(skip, 0)
    limit = min(max(limit, 1), max_limit)
    return skip, limit


class DataValidator:
    """資料驗證器"""

    def validate_check_in_data(self, data: dict) -> tuple[bool, list]:
        """驗證上班打卡資料"""
        errors = []

        if 'work_location' in data and not validate_work_location(data['work_location']):
            errors.append("workLocation must be 'office' or 'remote'")

        if not validate_coordinates(data.get('latitude'), data.get('longitude')):
            errors.append("latitude/longitude out of range")

        if not validate_note_length(data.get('notes')):
            errors.append("notes must be at most 500 characters")

        return len(errors) == 0, errors

    def validate_check_out_data(self, data: dict) -> tuple[bool, list]:
        """驗證下班打卡資料"""
        errors = []

        if not validate_overtime(data.get('overtime') or 0):
            errors.append("overtime must be between 0 and 24 hours")

        if not validate_note_length(data.get('notes')):
            errors.append("notes must be at most 500 characters")

        return len(errors) == 0, errors

    def validate_leave_data(self, data: dict, today: date) -> tuple[bool, list]:
        """驗證請假資料"""
        errors = []

        if not validate_leave_type(data.get('leave_type', '')):
            errors.append("Invalid leave type")

        if not validate_leave_reason(data.get('reason')):
            errors.append("Reason is required (max 500 characters)")

        start_date = data.get('start_date')
        end_date = data.get('end_date')
        if start_date is None or end_date is None:
            errors.append("Start date and end date are required")
        else:
            if start_date < today:
                errors.append("Start date cannot be in the past")
            if not validate_date_range(start_date, end_date, max_days=365):
                errors.append("End date must be on or after start date and within 365 days")

        return len(errors) == 0, errors


def ensure_valid(is_valid: bool, errors: list):
    """驗證失敗時拋出 ValidationError"""
    if not is_valid:
        raise ValidationError("; ".join(errors))
