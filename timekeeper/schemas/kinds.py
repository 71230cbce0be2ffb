from typing import Dict, Type

from timekeeper.schemas.attendance import Attendance, AttendanceUpdate
from timekeeper.schemas.common import EmployeeRecord, RecordUpdate, RequestRecord
from timekeeper.schemas.leave import LeaveRequest, LeaveRequestUpdate
from timekeeper.schemas.overtime import OvertimeRequest, OvertimeRequestUpdate
from timekeeper.schemas.swap import SwapRequest, SwapRequestUpdate
from timekeeper.schemas.time_request import TimeRequest, TimeRequestUpdate

# URL slug -> 레코드 스키마 (닫힌 집합)
RECORD_KINDS: Dict[str, Type[EmployeeRecord]] = {
    "attendance": Attendance,
    "leave": LeaveRequest,
    "overtime": OvertimeRequest,
    "swap": SwapRequest,
    "time-correction": TimeRequest,
}

UPDATE_SCHEMAS: Dict[str, Type[RecordUpdate]] = {
    "attendance": AttendanceUpdate,
    "leave": LeaveRequestUpdate,
    "overtime": OvertimeRequestUpdate,
    "swap": SwapRequestUpdate,
    "time-correction": TimeRequestUpdate,
}

REQUEST_KINDS: Dict[str, Type[RequestRecord]] = {
    slug: model
    for slug, model in RECORD_KINDS.items()
    if issubclass(model, RequestRecord)
}


def kind_slug(model: Type[EmployeeRecord]) -> str:
    for slug, candidate in RECORD_KINDS.items():
        if candidate is model:
            return slug
    raise KeyError(model.__name__)
