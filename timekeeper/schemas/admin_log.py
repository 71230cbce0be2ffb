from enum import Enum
from typing import Optional

from timekeeper.schemas.common import LocalDatetime, StoredDocument


class AdminAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    LOGIN = "login"
    OTHER = "other"


class AdminModule(str, Enum):
    EMPLOYEE = "employee"
    ATTENDANCE = "attendance"
    LEAVE = "leave"
    OT = "ot"
    SWAP = "swap"
    ADMIN = "admin"
    SETTING = "setting"
    PAYROLL = "payroll"


class AdminLog(StoredDocument):
    """관리자 활동 로그 (append-only)."""

    collection = "admin_logs"
    recency_field = "timestamp"
    range_field = "timestamp"

    adminId: str
    adminName: str
    action: AdminAction
    module: AdminModule
    target: Optional[str] = None
    details: str = ""
    timestamp: Optional[LocalDatetime] = None
