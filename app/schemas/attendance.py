from pydantic import Field
from typing import List, Optional
from datetime import date, datetime
from enum import Enum

from .common import CamelModel

class WorkLocation(str, Enum):
    OFFICE = "office"
    REMOTE = "remote"

class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    REMOTE = "remote"
    ON_BREAK = "on-break"
    HALF_DAY = "half-day"

class CheckInRequest(CamelModel):
    location: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=500)
    work_location: WorkLocation = WorkLocation.OFFICE
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

class BreakRequest(CamelModel):
    notes: Optional[str] = Field(None, max_length=500)

class CheckOutRequest(CamelModel):
    notes: Optional[str] = Field(None, max_length=500)
    overtime: float = Field(0, ge=0, le=24)

class AttendanceResponse(CamelModel):
    id: int
    employee_id: int
    date: date
    check_in_at: Optional[datetime] = None
    check_out_at: Optional[datetime] = None
    break_start_at: Optional[datetime] = None
    break_end_at: Optional[datetime] = None
    break_duration: int = 0
    work_hours: float = 0
    overtime: float = 0
    status: AttendanceStatus
    work_location: WorkLocation
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None

class AttendanceSummary(CamelModel):
    total_days: int
    present_days: int
    absent_days: int
    total_hours: float
    total_break_time: int
    average_hours: float

class AttendanceHistory(CamelModel):
    records: List[AttendanceResponse]
    summary: AttendanceSummary
