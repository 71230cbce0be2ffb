"""
정렬 키 하나에 대한 forward-only keyset pagination.

커서 = (정렬 필드, 마지막 문서의 정렬값, 마지막 문서 name).
이전 페이지로 가는 커서는 없다: "뒤로"는 1페이지부터 다시 조회한다.
조회 사이에 문서가 추가/삭제되면 페이지가 밀려서 누락/중복이 생길 수 있다.
"""
import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from timekeeper.core.codec import decode_value
from timekeeper.core.exceptions import InvalidCursor
from timekeeper.core.query import QueryBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PageCursor(BaseModel):
    field: str
    value: datetime
    document: str

    def to_token(self) -> str:
        raw = self.model_dump_json().encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def from_token(cls, token: str) -> "PageCursor":
        try:
            padded = token + "=" * (-len(token) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            return cls.model_validate_json(raw)
        except ValueError as exc:
            raise InvalidCursor("Malformed page cursor") from exc


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    cursor: Optional[PageCursor] = None

    @property
    def next_token(self) -> Optional[str]:
        return self.cursor.to_token() if self.cursor else None

    @property
    def has_more(self) -> bool:
        return self.cursor is not None


def apply_cursor(
    builder: QueryBuilder,
    order_field: str,
    page_size: int,
    cursor: Optional[PageCursor] = None,
) -> QueryBuilder:
    # 첫 페이지도 __name__ tie-break 정렬을 써야 이후 커서와 순서가 일치한다
    builder.order_by(order_field, descending=True, tie_break=True).limit(page_size)
    if cursor is not None:
        if cursor.field != order_field:
            raise InvalidCursor(
                f"Cursor was issued for {cursor.field!r}, not {order_field!r}"
            )
        builder.start_after(cursor.value, cursor.document)
    return builder


def cursor_after(
    documents: Sequence[Dict[str, Any]], order_field: str, page_size: int
) -> Optional[PageCursor]:
    """
    페이지가 꽉 찼으면 마지막 문서로 다음 커서를 만든다. 덜 찼으면 마지막 페이지.
    """
    if not documents or len(documents) < page_size:
        return None

    last = documents[-1]
    value = decode_value((last.get("fields") or {}).get(order_field))
    if not isinstance(value, datetime):
        logger.warning(
            "Cannot build cursor: %s has no timestamp in %s",
            last.get("name"),
            order_field,
        )
        return None
    return PageCursor(field=order_field, value=value, document=last["name"])
