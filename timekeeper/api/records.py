from datetime import date
from typing import Any, Dict, List, Literal, Optional, Type

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from timekeeper.core.config import settings
from timekeeper.core.deps import get_bearer_token, get_firestore, get_workflow, to_http_error
from timekeeper.core.exceptions import TimekeeperError
from timekeeper.core.firestore import FirestoreClient
from timekeeper.core.pagination import Page, PageCursor
from timekeeper.core.query import Projection
from timekeeper.core.repository import RecordRepository, RequestRepository
from timekeeper.core.workflow import AdminIdentity, ApprovalWorkflow
from timekeeper.schemas.attendance import Attendance
from timekeeper.schemas.common import EmployeeRecord, RecordUpdate, RequestRecord, RequestStatus
from timekeeper.schemas.kinds import RECORD_KINDS, UPDATE_SCHEMAS
from timekeeper.schemas.time_request import TimeRequest


class StatusAction(BaseModel):
    """승인/반려 요청 바디."""
    status: Literal["approved", "rejected"]
    reason: Optional[str] = None
    adminId: str
    adminName: str = "Admin"
    onlyIfPending: bool = False


class ReconcileAction(BaseModel):
    reason: Optional[str] = None


def _projection(lite: bool) -> Projection:
    return Projection.LITE if lite else Projection.FULL


def page_response(page: Page) -> Dict[str, Any]:
    return {"items": page.items, "nextCursor": page.next_token}


def parse_cursor(cursor: Optional[str]) -> Optional[PageCursor]:
    if not cursor:
        return None
    try:
        return PageCursor.from_token(cursor)
    except TimekeeperError as exc:
        raise to_http_error(exc)


def build_router(slug: str, model: Type[EmployeeRecord]) -> APIRouter:
    """
    레코드 종류 하나에 대한 CRUD + 조회 라우터.
    요청 종류(workflow 상태가 있는 것)는 pending/visible/status 엔드포인트가 추가된다.
    """
    router = APIRouter(
        prefix=f"/{slug}",
        tags=[slug],
    )
    is_request = issubclass(model, RequestRecord)
    repo_class = RequestRepository if is_request else RecordRepository
    update_schema: Type[RecordUpdate] = UPDATE_SCHEMAS[slug]
    range_limit = settings.ATTENDANCE_RANGE_LIMIT if model is Attendance else None

    def get_repo(
        client: FirestoreClient = Depends(get_firestore),
        token: str = Depends(get_bearer_token),
    ) -> RecordRepository:
        return repo_class(model, client, token)

    @router.get("")
    async def list_recent(
        limit: int = Query(settings.RECENT_WINDOW, ge=1),
        lite: bool = False,
        repo: RecordRepository = Depends(get_repo),
    ):
        return await repo.list_recent(limit, _projection(lite))

    if is_request:

        @router.get("/pending")
        async def list_pending(
            lite: bool = False,
            repo: RequestRepository = Depends(get_repo),
        ):
            return await repo.list_pending(_projection(lite))

        @router.get("/visible")
        async def list_visible(
            recent: int = Query(settings.RECENT_WINDOW, ge=1),
            lite: bool = False,
            repo: RequestRepository = Depends(get_repo),
        ):
            """pending 전체 + 최근 N개 (관리자 승인 화면용)."""
            return await repo.list_visible(recent, _projection(lite))

    @router.get("/page")
    async def next_page(
        cursor: Optional[str] = None,
        pageSize: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
        employeeId: Optional[str] = None,
        lite: bool = False,
        repo: RecordRepository = Depends(get_repo),
    ):
        page_cursor = parse_cursor(cursor)
        try:
            if employeeId:
                page = await repo.next_page_for_employee(
                    employeeId, page_cursor, pageSize, _projection(lite)
                )
            else:
                page = await repo.next_page(page_cursor, pageSize, _projection(lite))
        except TimekeeperError as exc:
            raise to_http_error(exc)
        return page_response(page)

    @router.get("/range")
    async def list_by_date_range(
        start: date,
        end: date,
        limit: Optional[int] = Query(None, ge=1),
        lite: bool = False,
        repo: RecordRepository = Depends(get_repo),
    ):
        try:
            return await repo.list_by_date_range(
                start, end, limit or range_limit, _projection(lite)
            )
        except TimekeeperError as exc:
            raise to_http_error(exc)

    @router.get("/employee/{employee_id}")
    async def list_by_employee(
        employee_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: Optional[int] = Query(None, ge=1),
        lite: bool = False,
        repo: RecordRepository = Depends(get_repo),
    ):
        try:
            return await repo.list_by_employee(
                employee_id, start, end, limit, _projection(lite)
            )
        except TimekeeperError as exc:
            raise to_http_error(exc)

    @router.get("/{record_id}")
    async def get_record(
        record_id: str,
        repo: RecordRepository = Depends(get_repo),
    ):
        try:
            record = await repo.get(record_id)
        except TimekeeperError as exc:
            raise to_http_error(exc)
        if record is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{slug} record not found",
            )
        return record

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_record(
        payload: model,
        repo: RecordRepository = Depends(get_repo),
    ):
        # 읽기에서는 모르는 필드를 보존하지만, 새로 쓰는 필드는 스키마에 있는 것만
        if payload.model_extra:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown field(s): {', '.join(sorted(payload.model_extra))}",
            )
        record = payload.model_copy(update={"id": None})
        if is_request:
            # 새 요청은 항상 승인 대기 상태로 시작
            record = record.model_copy(update={"status": RequestStatus.PENDING.value})
        try:
            record_id = await repo.create(record)
        except TimekeeperError as exc:
            raise to_http_error(exc)
        return {"id": record_id}

    @router.patch("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def update_record(
        record_id: str,
        payload: update_schema,
        repo: RecordRepository = Depends(get_repo),
    ):
        try:
            await repo.update(record_id, payload)
        except TimekeeperError as exc:
            raise to_http_error(exc)
        return

    @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_record(
        record_id: str,
        repo: RecordRepository = Depends(get_repo),
    ):
        try:
            await repo.delete(record_id)
        except TimekeeperError as exc:
            raise to_http_error(exc)
        return

    if is_request:

        @router.post("/{record_id}/status")
        async def change_status(
            record_id: str,
            payload: StatusAction,
            workflow: ApprovalWorkflow = Depends(get_workflow),
        ):
            new_status = (
                RequestStatus.APPROVED
                if payload.status == "approved"
                else RequestStatus.REJECTED
            )
            admin = AdminIdentity(admin_id=payload.adminId, admin_name=payload.adminName)
            try:
                return await workflow.transition(
                    model,
                    record_id,
                    new_status,
                    admin,
                    payload.reason,
                    only_if_pending=payload.onlyIfPending,
                )
            except TimekeeperError as exc:
                raise to_http_error(exc)

    if model is TimeRequest:

        @router.post("/{record_id}/reconcile")
        async def reconcile(
            record_id: str,
            payload: ReconcileAction,
            workflow: ApprovalWorkflow = Depends(get_workflow),
        ):
            """승인은 됐지만 출퇴근 기록 반영이 실패한 요청을 다시 반영."""
            try:
                attendance_id = await workflow.retry_reconciliation(
                    record_id, payload.reason
                )
            except TimekeeperError as exc:
                raise to_http_error(exc)
            return {"attendanceId": attendance_id}

    return router


routers: List[APIRouter] = [
    build_router(slug, model) for slug, model in RECORD_KINDS.items()
]
