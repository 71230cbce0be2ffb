from enum import Enum
from typing import List, Optional

from timekeeper.schemas.common import LocalDatetime, RecordUpdate, RequestRecord


class LeaveType(str, Enum):
    VACATION = "ลาพักร้อน"
    SICK = "ลาป่วย"
    PERSONAL = "ลากิจ"


class LeaveRequest(RequestRecord):
    collection = "leaveRequests"
    recency_field = "createdAt"
    range_field = "startDate"
    heavy_fields = frozenset({"attachment", "attachments"})
    audit_module = "leave"

    leaveType: LeaveType
    startDate: LocalDatetime
    endDate: LocalDatetime
    attachment: Optional[str] = None
    attachments: Optional[List[str]] = None

    # 시간 단위 휴가
    isHourly: Optional[bool] = None
    hours: Optional[float] = None
    hourlyStart: Optional[str] = None  # "10:00"
    hourlyEnd: Optional[str] = None


class LeaveRequestUpdate(RecordUpdate):
    leaveType: Optional[LeaveType] = None
    startDate: Optional[LocalDatetime] = None
    endDate: Optional[LocalDatetime] = None
    reason: Optional[str] = None
    attachment: Optional[str] = None
    attachments: Optional[List[str]] = None
    isHourly: Optional[bool] = None
    hours: Optional[float] = None
    hourlyStart: Optional[str] = None
    hourlyEnd: Optional[str] = None
