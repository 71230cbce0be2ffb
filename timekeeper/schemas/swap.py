from typing import Optional

from timekeeper.schemas.common import LocalDatetime, RecordUpdate, RequestRecord


class SwapRequest(RequestRecord):
    """휴일 교환 요청."""

    collection = "swapRequests"
    recency_field = "createdAt"
    range_field = "workDate"
    audit_module = "swap"

    workDate: LocalDatetime  # 원래 휴일인데 출근하려는 날
    holidayDate: LocalDatetime  # 대신 쉬려는 근무일


class SwapRequestUpdate(RecordUpdate):
    workDate: Optional[LocalDatetime] = None
    holidayDate: Optional[LocalDatetime] = None
    reason: Optional[str] = None
