from typing import Optional


class TimekeeperError(Exception):
    """레코드 접근 계층 공통 예외."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(TimekeeperError):
    """문서 저장소 호출이 쓸 수 있는 응답을 돌려주지 못한 경우."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Unauthenticated(TransportError):
    pass


class Unavailable(TransportError):
    pass


class Malformed(TransportError):
    pass


class DocumentNotFound(TransportError):
    pass


class Conflict(TransportError):
    """쓰기 precondition 불일치 (다른 관리자가 먼저 처리함)."""


class QueryError(TimekeeperError, ValueError):
    pass


class InvalidCursor(TimekeeperError, ValueError):
    pass


class InvalidTransition(TimekeeperError):
    pass


class InvalidUpdate(TimekeeperError, ValueError):
    """저장 후 다시 읽을 수 없게 되는 변경 (필수 필드를 null로 지우기 등)."""


class ReconciliationError(TimekeeperError):
    """상태는 저장됐지만 출퇴근 기록 반영(reconciliation)이 실패한 경우.

    상태 변경은 롤백하지 않으므로 reconciliation만 재시도하면 된다.
    """

    def __init__(self, request_id: str, cause: Exception) -> None:
        super().__init__(
            f"Attendance reconciliation failed for time request {request_id}: {cause}"
        )
        self.request_id = request_id
        self.cause = cause
