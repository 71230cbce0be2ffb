"""
레코드 종류별 조회/쓰기 연산 (외부 소비자가 호출하는 표면).

- 조회 실패(TransportError)는 로그만 남기고 빈 결과 -> "진짜 0건"과 구분 불가
- 쓰기 실패는 그대로 올라간다
"""
import asyncio
import logging
from datetime import date, datetime
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel

from timekeeper.core import clock
from timekeeper.core.codec import (
    UNSET,
    decode_record,
    decode_records,
    document_id,
    encode_fields,
    encode_record,
)
from timekeeper.core.exceptions import InvalidUpdate, TransportError
from timekeeper.core.firestore import FirestoreClient
from timekeeper.core.merge import merge_visible
from timekeeper.core.pagination import Page, PageCursor, apply_cursor, cursor_after
from timekeeper.core.query import Projection, QueryBuilder
from timekeeper.schemas.admin_log import AdminLog
from timekeeper.schemas.common import (
    RequestRecord,
    RequestStatus,
    StoredDocument,
)

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=StoredDocument)
R = TypeVar("R", bound=RequestRecord)

DateLike = Union[date, datetime]


class DocumentRepository(Generic[D]):
    def __init__(self, model: Type[D], client: FirestoreClient, token: str) -> None:
        self.model = model
        self.client = client
        self.token = token

    @property
    def collection(self) -> str:
        return self.model.collection

    def query(self, projection: Projection = Projection.FULL) -> QueryBuilder:
        return QueryBuilder.for_kind(self.model, projection)

    async def _run(
        self, builder: QueryBuilder, label: str, strict: bool = False
    ) -> List[Dict[str, Any]]:
        """strict=True면 조회 실패를 빈 결과로 바꾸지 않고 그대로 올린다."""
        try:
            return await self.client.run_query(builder.build(), self.token)
        except TransportError as exc:
            if strict:
                raise
            logger.error(
                "Query %s on %s failed, returning no results: %s",
                label,
                self.collection,
                exc,
            )
            return []

    async def fetch(
        self, builder: QueryBuilder, label: str = "query", strict: bool = False
    ) -> List[D]:
        return decode_records(self.model, await self._run(builder, label, strict))

    async def get(self, record_id: str) -> Optional[D]:
        record, _ = await self.get_versioned(record_id)
        return record

    async def get_versioned(self, record_id: str) -> Tuple[Optional[D], Optional[str]]:
        """레코드 + updateTime (precondition용)."""
        doc = await self.client.get_document(self.collection, record_id, self.token)
        if doc is None:
            return None, None
        return decode_record(self.model, doc), doc.get("updateTime")

    async def list_recent(
        self, limit: int, projection: Projection = Projection.FULL
    ) -> List[D]:
        builder = (
            self.query(projection)
            .order_by(self.model.recency_field)
            .limit(limit)
        )
        return await self.fetch(builder, "list_recent")

    async def list_by_date_range(
        self,
        start: DateLike,
        end: DateLike,
        limit: Optional[int] = None,
        projection: Projection = Projection.FULL,
    ) -> List[D]:
        field_path = self.model.range_field
        builder = (
            self.query(projection)
            .where_between(field_path, start, end)
            .order_by(field_path)
            .limit(limit)
        )
        return await self.fetch(builder, "list_by_date_range")

    async def next_page(
        self,
        cursor: Optional[PageCursor] = None,
        page_size: int = 20,
        projection: Projection = Projection.FULL,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Page[D]:
        builder = self.query(projection)
        for field_path, value in (filters or {}).items():
            builder.where_equal(field_path, value)
        apply_cursor(builder, self.model.recency_field, page_size, cursor)

        docs = await self._run(builder, "next_page")
        return Page(
            items=decode_records(self.model, docs),
            cursor=cursor_after(docs, self.model.recency_field, page_size),
        )

    async def create(self, record: D) -> str:
        doc = await self.client.create_document(
            self.collection, encode_record(record), self.token
        )
        record_id = document_id(doc["name"])
        logger.info("Created %s/%s", self.collection, record_id)
        return record_id

    async def update(
        self,
        record_id: str,
        changes: Union[Mapping[str, Any], BaseModel],
        *,
        update_time: Optional[str] = None,
    ) -> None:
        """
        부분 업데이트. UNSET 값은 제외(건드리지 않음), None은 명시적으로 지운다.
        null을 허용하지 않는 필드를 None으로 지우려 하면 InvalidUpdate.
        pydantic 모델이면 실제로 전달된 필드만 사용.
        """
        if isinstance(changes, BaseModel):
            changes = changes.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if k != "id" and v is not UNSET}
        cleared = sorted(
            k for k, v in changes.items() if v is None and not self.model.accepts_null(k)
        )
        if cleared:
            raise InvalidUpdate(
                f"Cannot clear required field(s) on {self.collection}: "
                + ", ".join(cleared)
            )
        if not changes:
            logger.info("Nothing to update on %s/%s", self.collection, record_id)
            return

        await self.client.patch_document(
            self.collection,
            record_id,
            encode_fields(changes),
            self.token,
            update_time=update_time,
        )
        logger.info(
            "Updated %s/%s fields=%s", self.collection, record_id, sorted(changes)
        )

    async def delete(self, record_id: str) -> None:
        # soft delete 없음: 즉시 영구 삭제
        await self.client.delete_document(self.collection, record_id, self.token)
        logger.info("Deleted %s/%s", self.collection, record_id)


class RecordRepository(DocumentRepository[D]):
    """직원 한 명에게 속하는 레코드 (attendance + 요청 4종)."""

    async def list_by_employee(
        self,
        employee_id: str,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
        limit: Optional[int] = None,
        projection: Projection = Projection.FULL,
        strict: bool = False,
    ) -> List[D]:
        builder = self.query(projection).where_equal("employeeId", employee_id)
        if start is not None or end is not None:
            # 범위 필터가 있으면 정렬도 같은 필드여야 한다
            field_path = self.model.range_field
            builder.where_between(field_path, start or end, end or start)
            builder.order_by(field_path)
        else:
            builder.order_by(self.model.recency_field)
        builder.limit(limit)
        return await self.fetch(builder, "list_by_employee", strict)

    async def next_page_for_employee(
        self,
        employee_id: str,
        cursor: Optional[PageCursor] = None,
        page_size: int = 20,
        projection: Projection = Projection.FULL,
    ) -> Page[D]:
        return await self.next_page(
            cursor, page_size, projection, filters={"employeeId": employee_id}
        )


class RequestRepository(RecordRepository[R]):
    """workflow 상태가 있는 요청 레코드 (leave / overtime / swap / time-correction)."""

    async def create(self, record: R) -> str:
        if record.createdAt is None:
            record = record.model_copy(update={"createdAt": clock.now()})
        return await super().create(record)

    async def list_pending(self, projection: Projection = Projection.FULL) -> List[R]:
        # 개수 제한 없음: 오래된 pending도 모두 보여야 한다
        builder = (
            self.query(projection)
            .where_equal("status", RequestStatus.PENDING)
            .order_by(self.model.recency_field)
        )
        return await self.fetch(builder, "list_pending")

    async def list_visible(
        self, recent: int, projection: Projection = Projection.FULL
    ) -> List[R]:
        pending, latest = await asyncio.gather(
            self.list_pending(projection),
            self.list_recent(recent, projection),
        )
        return merge_visible(pending, latest)

    async def update_status(
        self,
        record_id: str,
        status: RequestStatus,
        reason: Optional[str] = None,
        *,
        update_time: Optional[str] = None,
    ) -> None:
        """
        상태 변경. reason이 있으면 rejectionReason에 저장 (승인 메모로도 쓰임).
        이미 처리된 요청에 대한 재변경을 여기서 막지는 않는다.
        """
        changes: Dict[str, Any] = {"status": RequestStatus(status)}
        if reason:
            changes["rejectionReason"] = reason
        await self.update(record_id, changes, update_time=update_time)


class AdminLogRepository(DocumentRepository[AdminLog]):
    def __init__(self, client: FirestoreClient, token: str) -> None:
        super().__init__(AdminLog, client, token)

    async def append(self, entry: AdminLog) -> str:
        # timestamp는 항상 서버 시계 기준
        entry = entry.model_copy(update={"timestamp": clock.now()})
        return await self.create(entry)
