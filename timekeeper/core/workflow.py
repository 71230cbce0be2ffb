"""
요청 승인/반려 처리.

1) 요청 상태 변경 (pending -> approved | rejected)
2) time-correction 승인이면 출퇴근 기록에 반영 (reconciliation)
3) 관리자 로그 기록
4) 상태 변경 이벤트 publish

1과 2는 트랜잭션으로 묶여 있지 않다: 2가 실패해도 1은 롤백되지 않고
ReconciliationError로 알린다 (retry_reconciliation으로 2만 재시도).
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Type

from timekeeper.core import clock
from timekeeper.core.config import settings
from timekeeper.core.exceptions import (
    Conflict,
    DocumentNotFound,
    InvalidTransition,
    ReconciliationError,
    TimekeeperError,
)
from timekeeper.core.firestore import FirestoreClient
from timekeeper.core.repository import (
    AdminLogRepository,
    RecordRepository,
    RequestRepository,
)
from timekeeper.schemas.admin_log import AdminAction, AdminLog
from timekeeper.schemas.attendance import Attendance, AttendanceType
from timekeeper.schemas.common import RequestRecord, RequestStatus
from timekeeper.schemas.kinds import kind_slug
from timekeeper.schemas.message import StatusChangedMessage
from timekeeper.schemas.time_request import TimeRequest

logger = logging.getLogger(__name__)

StatusPublisher = Callable[[StatusChangedMessage], Awaitable[None]]

CORRECTION_NOTE = "คำขอปรับเวลา"

# 관리자 로그 details에 들어가는 요청 종류 이름
_AUDIT_LABELS: Dict[str, str] = {
    "leave": "การลา",
    "ot": "การทำ OT",
    "swap": "การสลับวันหยุด",
    "attendance": "การปรับเวลา",
}


@dataclass
class AdminIdentity:
    admin_id: str
    admin_name: str = "Admin"


def correction_note(reason: Optional[str]) -> str:
    return f"{CORRECTION_NOTE}: {reason}" if reason else CORRECTION_NOTE


def _audit_subject(record: RequestRecord) -> Optional[str]:
    if isinstance(record, TimeRequest):
        return str(record.type)
    return getattr(record, "leaveType", None)


class ApprovalWorkflow:
    def __init__(
        self,
        client: FirestoreClient,
        token: str,
        publisher: Optional[StatusPublisher] = None,
        allow_terminal_rewrite: Optional[bool] = None,
    ) -> None:
        self.client = client
        self.token = token
        self.publisher = publisher
        self.allow_terminal_rewrite = (
            settings.ALLOW_TERMINAL_REWRITE
            if allow_terminal_rewrite is None
            else allow_terminal_rewrite
        )
        self.attendance = RecordRepository(Attendance, client, token)
        self.admin_logs = AdminLogRepository(client, token)

    def requests(self, model: Type[RequestRecord]) -> RequestRepository:
        return RequestRepository(model, self.client, self.token)

    async def approve(
        self,
        model: Type[RequestRecord],
        request_id: str,
        admin: AdminIdentity,
        reason: Optional[str] = None,
        *,
        only_if_pending: bool = False,
    ) -> RequestRecord:
        return await self.transition(
            model,
            request_id,
            RequestStatus.APPROVED,
            admin,
            reason,
            only_if_pending=only_if_pending,
        )

    async def reject(
        self,
        model: Type[RequestRecord],
        request_id: str,
        admin: AdminIdentity,
        reason: Optional[str] = None,
        *,
        only_if_pending: bool = False,
    ) -> RequestRecord:
        return await self.transition(
            model,
            request_id,
            RequestStatus.REJECTED,
            admin,
            reason,
            only_if_pending=only_if_pending,
        )

    async def transition(
        self,
        model: Type[RequestRecord],
        request_id: str,
        status: RequestStatus,
        admin: AdminIdentity,
        reason: Optional[str] = None,
        *,
        only_if_pending: bool = False,
    ) -> RequestRecord:
        """
        상태 변경 후 변경된 레코드를 반환.

        - only_if_pending=True: 읽은 시점의 updateTime을 precondition으로 쓰기
          -> 그 사이 다른 관리자가 처리했으면 Conflict
        - 이미 처리된 요청의 재변경은 ALLOW_TERMINAL_REWRITE 설정을 따른다
        """
        status = RequestStatus(status)
        if status is RequestStatus.PENDING:
            raise InvalidTransition("A request cannot be moved back to pending")

        repo = self.requests(model)
        record, update_time = await repo.get_versioned(request_id)
        if record is None:
            raise DocumentNotFound(f"{model.collection}/{request_id} not found", 404)

        if not record.is_pending:
            if only_if_pending:
                raise Conflict(
                    f"{model.collection}/{request_id} is already {record.status}"
                )
            if not self.allow_terminal_rewrite:
                raise InvalidTransition(
                    f"{model.collection}/{request_id} is already {record.status}"
                )
            logger.warning(
                "Re-transitioning %s/%s from %s to %s",
                model.collection,
                request_id,
                record.status,
                status.value,
            )

        await repo.update_status(
            request_id,
            status,
            reason,
            update_time=update_time if only_if_pending else None,
        )
        updates = {"status": status.value}
        if reason:
            updates["rejectionReason"] = reason
        record = record.model_copy(update=updates)
        logger.info(
            "%s/%s -> %s by admin=%s",
            model.collection,
            request_id,
            status.value,
            admin.admin_id,
        )

        failure: Optional[ReconciliationError] = None
        if status is RequestStatus.APPROVED and isinstance(record, TimeRequest):
            try:
                await self.reconcile_time_request(record, reason)
            except TimekeeperError as exc:
                logger.error(
                    "Reconciliation failed for timeRequests/%s: %s", request_id, exc
                )
                failure = ReconciliationError(request_id, exc)

        await self._append_audit(record, status, admin, reason)
        await self._publish(record, status, admin, reason)

        if failure is not None:
            raise failure
        return record

    async def reconcile_time_request(
        self, req: TimeRequest, reason: Optional[str] = None
    ) -> str:
        """
        승인된 시간 정정 요청을 해당 지역 날짜의 출퇴근 기록에 반영.
        같은 type의 기록이 있으면 시각만 고치고, 없으면 새로 만든다.
        반영된 attendance id를 반환.
        """
        start, end = clock.day_bounds(req.date)
        # 조회 실패를 "기록 없음"으로 보면 중복 기록이 생긴다
        history = await self.attendance.list_by_employee(
            req.employeeId, start, end, strict=True
        )
        existing = next((a for a in history if a.status == req.type), None)

        time_field = "checkOut" if req.type == AttendanceType.CHECK_OUT else "checkIn"
        note = correction_note(reason)

        if existing is not None and existing.id:
            await self.attendance.update(
                existing.id, {time_field: req.time, "locationNote": note}
            )
            logger.info(
                "Corrected attendance/%s %s from timeRequests/%s",
                existing.id,
                time_field,
                req.id,
            )
            return existing.id

        attendance = Attendance(
            employeeId=req.employeeId,
            employeeName=req.employeeName,
            date=req.date,
            status=req.type,
            locationNote=note,
            **{time_field: req.time},
        )
        attendance_id = await self.attendance.create(attendance)
        logger.info(
            "Created attendance/%s from timeRequests/%s", attendance_id, req.id
        )
        return attendance_id

    async def retry_reconciliation(
        self, request_id: str, reason: Optional[str] = None
    ) -> str:
        req = await self.requests(TimeRequest).get(request_id)
        if req is None:
            raise DocumentNotFound(f"timeRequests/{request_id} not found", 404)
        if req.status != RequestStatus.APPROVED:
            raise InvalidTransition(
                f"timeRequests/{request_id} is {req.status}, not approved"
            )
        try:
            return await self.reconcile_time_request(req, reason)
        except TimekeeperError as exc:
            raise ReconciliationError(request_id, exc) from exc

    async def _append_audit(
        self,
        record: RequestRecord,
        status: RequestStatus,
        admin: AdminIdentity,
        reason: Optional[str],
    ) -> None:
        action = (
            AdminAction.APPROVE
            if status is RequestStatus.APPROVED
            else AdminAction.REJECT
        )
        label = _AUDIT_LABELS.get(record.audit_module, record.audit_module)
        details = f"{action.value} {label}ของ {record.employeeName}"
        subject = _audit_subject(record)
        if subject:
            details += f" ({subject})"
        if reason:
            details += f" เหตุผล: {reason}"

        entry = AdminLog(
            adminId=admin.admin_id,
            adminName=admin.admin_name,
            action=action,
            module=record.audit_module,
            target=record.employeeName,
            details=details,
        )
        try:
            await self.admin_logs.append(entry)
        except TimekeeperError as exc:
            # 로그 기록 실패가 상태 변경 자체를 실패시키지는 않는다
            logger.error("Failed to append admin log for %s: %s", record.id, exc)

    async def _publish(
        self,
        record: RequestRecord,
        status: RequestStatus,
        admin: AdminIdentity,
        reason: Optional[str],
    ) -> None:
        if self.publisher is None:
            return

        msg = StatusChangedMessage(
            kind=kind_slug(type(record)),
            recordId=record.id or "",
            employeeId=record.employeeId,
            employeeName=record.employeeName,
            status=status.value,
            reason=reason,
            adminId=admin.admin_id,
            adminName=admin.admin_name,
            changedAt=clock.now(),
        )
        try:
            await self.publisher(msg)
        except Exception as exc:
            logger.error("Failed to publish status change for %s: %s", record.id, exc)
