from pydantic import Field
from typing import Optional
from datetime import date, datetime
from enum import Enum

from .common import CamelModel

class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

class LeaveType(str, Enum):
    VACATION = "vacation"
    SICK = "sick"
    PERSONAL = "personal"
    EMERGENCY = "emergency"
    MATERNITY = "maternity"
    PATERNITY = "paternity"
    BEREAVEMENT = "bereavement"
    UNPAID = "unpaid"
    COMPENSATORY = "compensatory"

class LeaveCreate(CamelModel):
    leave_type: LeaveType = LeaveType.VACATION
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=500)

class LeaveResponse(CamelModel):
    id: int
    employee_id: int
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: LeaveStatus
    review_comment: Optional[str] = None
    reviewed_by: Optional[int] = None
    created_at: Optional[datetime] = None
