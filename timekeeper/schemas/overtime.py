from typing import Optional

from timekeeper.schemas.common import LocalDatetime, RecordUpdate, RequestRecord


class OvertimeRequest(RequestRecord):
    collection = "otRequests"
    recency_field = "createdAt"
    range_field = "date"
    audit_module = "ot"

    date: LocalDatetime
    startTime: LocalDatetime
    endTime: LocalDatetime


class OvertimeRequestUpdate(RecordUpdate):
    date: Optional[LocalDatetime] = None
    startTime: Optional[LocalDatetime] = None
    endTime: Optional[LocalDatetime] = None
    reason: Optional[str] = None
