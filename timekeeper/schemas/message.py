from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class StatusChangedMessage(BaseModel):
    """
    요청 상태 변경 이벤트. 알림 서비스(외부)가 구독한다.
    """
    kind: str
    recordId: str
    employeeId: str
    employeeName: str
    status: str
    reason: Optional[str] = None
    adminId: str
    adminName: str
    changedAt: datetime
