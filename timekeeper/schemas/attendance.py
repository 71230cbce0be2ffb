from enum import Enum
from typing import Optional

from timekeeper.schemas.common import EmployeeRecord, LocalDatetime, RecordUpdate


class AttendanceType(str, Enum):
    CHECK_IN = "เข้างาน"
    CHECK_OUT = "ออกงาน"
    LEAVE = "ลางาน"
    LATE = "สาย"
    BREAK_START = "ก่อนพัก"
    BREAK_END = "หลังพัก"
    OFFSITE_OUT = "ออกนอกพื้นที่ขาไป"
    OFFSITE_RETURN = "ออกนอกพื้นที่ขากลับ"


class Attendance(EmployeeRecord):
    """출퇴근 이벤트. workflow 상태 없이 사실 그대로 기록된다."""

    collection = "attendance"
    recency_field = "date"
    range_field = "date"
    heavy_fields = frozenset({"photo"})

    date: LocalDatetime
    checkIn: Optional[LocalDatetime] = None
    checkOut: Optional[LocalDatetime] = None
    status: AttendanceType
    location: Optional[str] = None
    photo: Optional[str] = None  # base64
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    locationNote: Optional[str] = None
    distance: Optional[float] = None  # 근무지로부터 거리 (m)
    lateMinutes: Optional[int] = None


class AttendanceUpdate(RecordUpdate):
    date: Optional[LocalDatetime] = None
    checkIn: Optional[LocalDatetime] = None
    checkOut: Optional[LocalDatetime] = None
    status: Optional[AttendanceType] = None
    location: Optional[str] = None
    photo: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    locationNote: Optional[str] = None
    distance: Optional[float] = None
    lateMinutes: Optional[int] = None
