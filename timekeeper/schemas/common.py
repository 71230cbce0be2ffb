from datetime import datetime
from enum import Enum
from typing import Annotated, ClassVar, FrozenSet, List, Optional, get_args

from pydantic import AfterValidator, BaseModel, ConfigDict

from timekeeper.core.clock import to_local

# 저장소에서 읽은 시각은 항상 지역 시간 기준 aware datetime
LocalDatetime = Annotated[datetime, AfterValidator(to_local)]


class RequestStatus(str, Enum):
    """요청 상태. 기존 컬렉션에 저장된 값을 그대로 사용."""

    PENDING = "รออนุมัติ"
    APPROVED = "อนุมัติ"
    REJECTED = "ไม่อนุมัติ"


class StoredDocument(BaseModel):
    """
    Firestore 컬렉션 하나에 대응하는 문서 스키마.
    - id: 문서 name의 마지막 segment (생성 전에는 None)
    - 스키마에 없는 필드도 보존 (extra="allow")
    """

    model_config = ConfigDict(
        extra="allow",
        use_enum_values=True,
        validate_default=True,
    )

    collection: ClassVar[str]
    recency_field: ClassVar[str]
    range_field: ClassVar[str]
    heavy_fields: ClassVar[FrozenSet[str]] = frozenset()

    id: Optional[str] = None

    @classmethod
    def lite_fields(cls) -> List[str]:
        # lite projection allow-list는 codec과 같은 스키마에서 생성
        return [
            name
            for name in cls.model_fields
            if name != "id" and name not in cls.heavy_fields
        ]

    @classmethod
    def accepts_null(cls, name: str) -> bool:
        # 스키마에 없는 필드(extra)는 제약 없음
        field = cls.model_fields.get(name)
        if field is None:
            return True
        return type(None) in get_args(field.annotation)

    @property
    def anchor(self) -> Optional[datetime]:
        return getattr(self, self.recency_field, None)


class EmployeeRecord(StoredDocument):
    employeeId: str
    # 표시용 복사본. 직원 이름 변경 시 자동 갱신되지 않음
    employeeName: str = ""


class RequestRecord(EmployeeRecord):
    audit_module: ClassVar[str]

    reason: str = ""
    status: RequestStatus = RequestStatus.PENDING
    createdAt: Optional[LocalDatetime] = None
    rejectionReason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class RecordUpdate(BaseModel):
    """PATCH 요청 바디 공통. 전달된 필드만 updateMask에 들어간다."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)
