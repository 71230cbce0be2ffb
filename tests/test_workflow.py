from datetime import datetime

import pytest

from timekeeper.core import clock
from timekeeper.core.exceptions import (
    Conflict,
    DocumentNotFound,
    InvalidTransition,
    ReconciliationError,
)
from timekeeper.core.workflow import AdminIdentity, ApprovalWorkflow
from timekeeper.schemas.attendance import Attendance, AttendanceType
from timekeeper.schemas.common import RequestStatus
from timekeeper.schemas.leave import LeaveRequest, LeaveType
from timekeeper.schemas.time_request import CorrectionType, TimeRequest

from conftest import TOKEN

TZ = clock.local_tz()
ADMIN = AdminIdentity(admin_id="A1", admin_name="admin@example.com")


def _time_request(kind=CorrectionType.CHECK_IN, hour=8, minute=15) -> TimeRequest:
    return TimeRequest(
        employeeId="E1",
        employeeName="Somchai",
        date=datetime(2024, 3, 1, tzinfo=TZ),
        type=kind,
        time=datetime(2024, 3, 1, hour, minute, tzinfo=TZ),
        reason="forgot to scan",
        createdAt=datetime(2024, 3, 1, 12, 0, tzinfo=TZ),
    )


def _leave() -> LeaveRequest:
    return LeaveRequest(
        employeeId="E2",
        employeeName="Malee",
        leaveType=LeaveType.VACATION,
        startDate=datetime(2024, 4, 1, tzinfo=TZ),
        endDate=datetime(2024, 4, 3, tzinfo=TZ),
        createdAt=datetime(2024, 3, 20, tzinfo=TZ),
    )


@pytest.fixture()
def published():
    return []


@pytest.fixture()
def workflow(firestore, published):
    async def publisher(msg):
        published.append(msg)

    return ApprovalWorkflow(firestore, TOKEN, publisher=publisher)


@pytest.mark.asyncio
async def test_approval_creates_missing_attendance(fake_store, workflow):
    request_id = fake_store.seed(_time_request())

    await workflow.approve(TimeRequest, request_id, ADMIN)

    attendance = list(fake_store.docs("attendance"))
    assert len(attendance) == 1
    doc_id = attendance[0]
    assert fake_store.field("attendance", doc_id, "employeeId") == "E1"
    assert fake_store.field("attendance", doc_id, "status") == "เข้างาน"
    assert fake_store.field("attendance", doc_id, "checkIn") == datetime(
        2024, 3, 1, 8, 15, tzinfo=TZ
    )
    assert fake_store.field("attendance", doc_id, "locationNote") == "คำขอปรับเวลา"
    assert fake_store.field("timeRequests", request_id, "status") == "อนุมัติ"


@pytest.mark.asyncio
async def test_approval_corrects_existing_attendance(fake_store, workflow):
    existing = fake_store.seed(
        Attendance(
            employeeId="E1",
            employeeName="Somchai",
            date=datetime(2024, 3, 1, tzinfo=TZ),
            checkIn=datetime(2024, 3, 1, 9, 0, tzinfo=TZ),
            status=AttendanceType.CHECK_IN,
        )
    )
    request_id = fake_store.seed(_time_request())

    await workflow.approve(TimeRequest, request_id, ADMIN, reason="scanner down")

    assert list(fake_store.docs("attendance")) == [existing]
    assert fake_store.field("attendance", existing, "checkIn") == datetime(
        2024, 3, 1, 8, 15, tzinfo=TZ
    )
    assert (
        fake_store.field("attendance", existing, "locationNote")
        == "คำขอปรับเวลา: scanner down"
    )
    # 승인 메모도 rejectionReason에 저장된다
    assert fake_store.field("timeRequests", request_id, "rejectionReason") == "scanner down"


@pytest.mark.asyncio
async def test_check_out_correction_sets_check_out(fake_store, workflow):
    request_id = fake_store.seed(_time_request(CorrectionType.CHECK_OUT, 18, 5))

    await workflow.approve(TimeRequest, request_id, ADMIN)

    doc_id = next(iter(fake_store.docs("attendance")))
    assert fake_store.field("attendance", doc_id, "checkOut") == datetime(
        2024, 3, 1, 18, 5, tzinfo=TZ
    )
    assert fake_store.field("attendance", doc_id, "checkIn") is None


@pytest.mark.asyncio
async def test_rejection_does_not_touch_attendance(fake_store, workflow):
    request_id = fake_store.seed(_time_request())

    record = await workflow.reject(TimeRequest, request_id, ADMIN, reason="no proof")

    assert record.status == RequestStatus.REJECTED
    assert fake_store.docs("attendance") == {}
    assert fake_store.field("timeRequests", request_id, "rejectionReason") == "no proof"


@pytest.mark.asyncio
async def test_every_transition_is_audited(fake_store, workflow):
    request_id = fake_store.seed(_time_request())

    await workflow.reject(TimeRequest, request_id, ADMIN, reason="no proof")

    logs = list(fake_store.docs("admin_logs"))
    assert len(logs) == 1
    assert fake_store.field("admin_logs", logs[0], "action") == "reject"
    assert fake_store.field("admin_logs", logs[0], "module") == "attendance"
    assert fake_store.field("admin_logs", logs[0], "target") == "Somchai"
    assert fake_store.field("admin_logs", logs[0], "details") == (
        "reject การปรับเวลาของ Somchai (เข้างาน) เหตุผล: no proof"
    )


@pytest.mark.asyncio
async def test_terminal_request_can_be_transitioned_again(fake_store, workflow, caplog):
    request_id = fake_store.seed(_leave())

    await workflow.reject(LeaveRequest, request_id, ADMIN)
    record = await workflow.approve(LeaveRequest, request_id, ADMIN)

    assert record.status == RequestStatus.APPROVED
    assert fake_store.field("leaveRequests", request_id, "status") == "อนุมัติ"
    assert "Re-transitioning" in caplog.text
    assert len(fake_store.docs("admin_logs")) == 2


@pytest.mark.asyncio
async def test_terminal_rewrite_can_be_disabled(fake_store, firestore):
    workflow = ApprovalWorkflow(firestore, TOKEN, allow_terminal_rewrite=False)
    request_id = fake_store.seed(_leave())

    await workflow.approve(LeaveRequest, request_id, ADMIN)
    with pytest.raises(InvalidTransition):
        await workflow.reject(LeaveRequest, request_id, ADMIN)


@pytest.mark.asyncio
async def test_back_to_pending_is_invalid(fake_store, workflow):
    request_id = fake_store.seed(_leave())
    with pytest.raises(InvalidTransition):
        await workflow.transition(LeaveRequest, request_id, RequestStatus.PENDING, ADMIN)


@pytest.mark.asyncio
async def test_unknown_request_is_not_found(workflow):
    with pytest.raises(DocumentNotFound):
        await workflow.approve(LeaveRequest, "missing", ADMIN)


@pytest.mark.asyncio
async def test_only_if_pending_rejects_processed_request(fake_store, workflow):
    request_id = fake_store.seed(_leave())
    await workflow.approve(LeaveRequest, request_id, ADMIN)

    with pytest.raises(Conflict):
        await workflow.reject(LeaveRequest, request_id, ADMIN, only_if_pending=True)
    assert fake_store.field("leaveRequests", request_id, "status") == "อนุมัติ"


@pytest.mark.asyncio
async def test_only_if_pending_loses_to_concurrent_writer(fake_store, workflow):
    request_id = fake_store.seed(_leave())
    repo = workflow.requests(LeaveRequest)
    original_get = repo.get_versioned

    async def racing_get(record_id):
        result = await original_get(record_id)
        # 읽은 직후 다른 관리자가 먼저 처리
        doc = fake_store.docs("leaveRequests")[record_id]
        doc["updateTime"] = "2099-01-01T00:00:00Z"
        return result

    repo.get_versioned = racing_get
    workflow.requests = lambda model: repo

    with pytest.raises(Conflict):
        await workflow.approve(LeaveRequest, request_id, ADMIN, only_if_pending=True)
    assert fake_store.field("leaveRequests", request_id, "status") == "รออนุมัติ"


@pytest.mark.asyncio
async def test_publisher_receives_status_event(fake_store, workflow, published):
    request_id = fake_store.seed(_leave())

    await workflow.reject(LeaveRequest, request_id, ADMIN, reason="peak season")

    assert len(published) == 1
    msg = published[0]
    assert msg.kind == "leave"
    assert msg.recordId == request_id
    assert msg.status == "ไม่อนุมัติ"
    assert msg.reason == "peak season"
    assert msg.adminId == "A1"


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_transition(fake_store, firestore):
    async def broken(msg):
        raise RuntimeError("broker down")

    workflow = ApprovalWorkflow(firestore, TOKEN, publisher=broken)
    request_id = fake_store.seed(_leave())

    record = await workflow.approve(LeaveRequest, request_id, ADMIN)
    assert record.status == RequestStatus.APPROVED


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_transition(fake_store, workflow):
    fake_store.fail_writes_to = "admin_logs"
    request_id = fake_store.seed(_leave())

    record = await workflow.approve(LeaveRequest, request_id, ADMIN)
    assert record.status == RequestStatus.APPROVED
    assert fake_store.docs("admin_logs") == {}


@pytest.mark.asyncio
async def test_reconciliation_failure_keeps_status_and_can_be_retried(fake_store, workflow):
    request_id = fake_store.seed(_time_request())
    fake_store.fail_writes_to = "attendance"

    with pytest.raises(ReconciliationError) as info:
        await workflow.approve(TimeRequest, request_id, ADMIN)

    assert info.value.request_id == request_id
    assert fake_store.field("timeRequests", request_id, "status") == "อนุมัติ"
    assert fake_store.docs("attendance") == {}
    assert len(fake_store.docs("admin_logs")) == 1

    fake_store.fail_writes_to = None
    attendance_id = await workflow.retry_reconciliation(request_id)
    assert fake_store.field("attendance", attendance_id, "status") == "เข้างาน"


@pytest.mark.asyncio
async def test_retry_requires_approved_request(fake_store, workflow):
    request_id = fake_store.seed(_time_request())
    with pytest.raises(InvalidTransition):
        await workflow.retry_reconciliation(request_id)


@pytest.mark.asyncio
async def test_failed_attendance_lookup_does_not_create_duplicate(fake_store, workflow):
    existing = fake_store.seed(
        Attendance(
            employeeId="E1",
            employeeName="Somchai",
            date=datetime(2024, 3, 1, tzinfo=TZ),
            checkIn=datetime(2024, 3, 1, 9, 0, tzinfo=TZ),
            status=AttendanceType.CHECK_IN,
        )
    )
    request_id = fake_store.seed(_time_request())
    # 조회만 실패하고 쓰기는 성공하는 상황
    fake_store.fail_queries_on = "attendance"

    with pytest.raises(ReconciliationError) as info:
        await workflow.approve(TimeRequest, request_id, ADMIN)

    assert info.value.request_id == request_id
    assert list(fake_store.docs("attendance")) == [existing]
    assert fake_store.field("attendance", existing, "checkIn") == datetime(
        2024, 3, 1, 9, 0, tzinfo=TZ
    )
    assert fake_store.field("timeRequests", request_id, "status") == "อนุมัติ"

    fake_store.fail_queries_on = None
    assert await workflow.retry_reconciliation(request_id) == existing
    assert list(fake_store.docs("attendance")) == [existing]
