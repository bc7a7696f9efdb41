import math
from datetime import datetime, date, timedelta
from typing import Union
import pytz

from app.config import settings


def get_user_timezone(timezone_str: str = None) -> pytz.BaseTzInfo:
    """獲取用戶時區"""
    try:
        return pytz.timezone(timezone_str or settings.TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone("Asia/Taipei")


def utc_now() -> datetime:
    """獲取當前 UTC 時間"""
    return datetime.now(pytz.UTC)


def user_now(timezone_str: str = None) -> datetime:
    """獲取用戶時區當前時間"""
    user_tz = get_user_timezone(timezone_str)
    return utc_now().astimezone(user_tz)


def ensure_utc(dt: datetime) -> datetime:
    """確保時間帶有 UTC 時區（SQLite 讀回的時間不含時區）"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_user_timezone(dt: datetime, timezone_str: str = None) -> datetime:
    """將 UTC 時間轉換為用戶時區"""
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    user_tz = get_user_timezone(timezone_str)
    return dt.astimezone(user_tz)


def local_date(dt: datetime, timezone_str: str = None) -> date:
    """取得時間在參考時區的日曆日"""
    return to_user_timezone(dt, timezone_str).date()


def get_today(timezone_str: str = None) -> date:
    """獲取用戶時區今天日期"""
    return user_now(timezone_str).date()


def format_datetime(dt: datetime, timezone_str: str = None, format_str: str = "%Y-%m-%d %H:%M") -> str:
    """格式化時間為用戶時區字符串"""
    user_dt = to_user_timezone(dt, timezone_str)
    return user_dt.strftime(format_str)


def format_time(dt: datetime, timezone_str: str = None) -> str:
    """格式化為時間字符串 (HH:MM)"""
    return format_datetime(dt, timezone_str, "%H:%M")


def format_date(dt: Union[datetime, date]) -> str:
    """格式化為日期字符串 (YYYY-MM-DD)"""
    if isinstance(dt, datetime):
        return dt.date().strftime("%Y-%m-%d")
    return dt.strftime("%Y-%m-%d")


def round_half_up(value: float, digits: int = 0) -> float:
    """四捨五入（.5 一律進位，不使用銀行家捨入）"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_minutes(duration: timedelta) -> int:
    """將時間差四捨五入為整數分鐘"""
    return int(round_half_up(duration.total_seconds() / 60))


def minutes_to_hours(minutes: float) -> float:
    """分鐘轉小時，保留一位小數"""
    return round_half_up(minutes / 60, 1)


def is_after_cutoff(dt: datetime, hour: int, minute: int, timezone_str: str = None) -> bool:
    """判斷當地時間（時:分）是否晚於截止時間"""
    local_dt = to_user_timezone(dt, timezone_str)
    return (local_dt.hour, local_dt.minute) > (hour, minute)
