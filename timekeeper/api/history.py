from typing import Optional

from fastapi import APIRouter, Depends, Query

from timekeeper.core.deps import get_bearer_token, get_firestore
from timekeeper.core.firestore import FirestoreClient
from timekeeper.core.history import load_employee_history

router = APIRouter(
    prefix="/history",
    tags=["history"],
)


@router.get("/{employee_id}")
async def get_employee_history(
    employee_id: str,
    limit: Optional[int] = Query(None, ge=1),
    client: FirestoreClient = Depends(get_firestore),
    token: str = Depends(get_bearer_token),
):
    """
    직원 상세 화면용: 출퇴근 + 요청 4종 (lite).
    """
    history = await load_employee_history(client, token, employee_id, limit)
    return {
        "employeeId": history.employee_id,
        "attendance": history.attendance,
        "leave": history.leave,
        "overtime": history.overtime,
        "swap": history.swap,
        "timeCorrection": history.time_correction,
    }
