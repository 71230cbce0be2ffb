import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from timekeeper.core.config import settings
from timekeeper.core.firestore import FirestoreClient
from timekeeper.core.query import Projection
from timekeeper.core.repository import RecordRepository, RequestRepository
from timekeeper.schemas.attendance import Attendance
from timekeeper.schemas.leave import LeaveRequest
from timekeeper.schemas.overtime import OvertimeRequest
from timekeeper.schemas.swap import SwapRequest
from timekeeper.schemas.time_request import TimeRequest


@dataclass
class EmployeeHistory:
    employee_id: str
    attendance: List[Attendance] = field(default_factory=list)
    leave: List[LeaveRequest] = field(default_factory=list)
    overtime: List[OvertimeRequest] = field(default_factory=list)
    swap: List[SwapRequest] = field(default_factory=list)
    time_correction: List[TimeRequest] = field(default_factory=list)


async def load_employee_history(
    client: FirestoreClient,
    token: str,
    employee_id: str,
    limit: Optional[int] = None,
) -> EmployeeHistory:
    """
    직원 한 명의 최근 기록 5종을 동시에 조회 (모두 lite projection).
    한 종류가 실패해도 그 종류만 빈 리스트가 된다.
    """
    limit = limit or settings.HISTORY_LIMIT
    lite = Projection.LITE

    attendance, leave, overtime, swap, corrections = await asyncio.gather(
        RecordRepository(Attendance, client, token).list_by_employee(
            employee_id, limit=limit, projection=lite
        ),
        RequestRepository(LeaveRequest, client, token).list_by_employee(
            employee_id, limit=limit, projection=lite
        ),
        RequestRepository(OvertimeRequest, client, token).list_by_employee(
            employee_id, limit=limit, projection=lite
        ),
        RequestRepository(SwapRequest, client, token).list_by_employee(
            employee_id, limit=limit, projection=lite
        ),
        RequestRepository(TimeRequest, client, token).list_by_employee(
            employee_id, limit=limit, projection=lite
        ),
    )
    return EmployeeHistory(
        employee_id=employee_id,
        attendance=attendance,
        leave=leave,
        overtime=overtime,
        swap=swap,
        time_correction=corrections,
    )
