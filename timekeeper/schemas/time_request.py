from enum import Enum
from typing import Optional

from timekeeper.schemas.attendance import AttendanceType
from timekeeper.schemas.common import LocalDatetime, RecordUpdate, RequestRecord


class CorrectionType(str, Enum):
    CHECK_IN = AttendanceType.CHECK_IN.value
    CHECK_OUT = AttendanceType.CHECK_OUT.value
    BREAK_START = AttendanceType.BREAK_START.value
    BREAK_END = AttendanceType.BREAK_END.value


class TimeRequest(RequestRecord):
    """출퇴근 시간 정정 요청. 승인되면 attendance 컬렉션에 반영된다."""

    collection = "timeRequests"
    recency_field = "createdAt"
    range_field = "date"
    heavy_fields = frozenset({"attachment"})
    audit_module = "attendance"

    date: LocalDatetime
    type: CorrectionType
    time: LocalDatetime  # 정정하려는 실제 시각
    attachment: Optional[str] = None


class TimeRequestUpdate(RecordUpdate):
    date: Optional[LocalDatetime] = None
    type: Optional[CorrectionType] = None
    time: Optional[LocalDatetime] = None
    reason: Optional[str] = None
    attachment: Optional[str] = None
