"""
Firestore structuredQuery 생성.

- 필터는 AND로만 결합 (OR / 중첩 없음)
- 범위 필터는 한 필드에만 허용, 정렬 필드는 그 필드와 같아야 함 (Firestore 제약)
- projection: FULL(전체) / LITE(heavy 필드 제외 allow-list)
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from timekeeper.core.clock import range_bounds
from timekeeper.core.codec import encode_value
from timekeeper.core.exceptions import QueryError
from timekeeper.schemas.common import StoredDocument

NAME_FIELD = "__name__"


class Projection(str, Enum):
    FULL = "full"
    LITE = "lite"


class Operator(str, Enum):
    EQUAL = "EQUAL"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"

    @property
    def is_range(self) -> bool:
        return self is not Operator.EQUAL


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: Operator
    value: Any

    def to_wire(self) -> Dict[str, Any]:
        return {
            "fieldFilter": {
                "field": {"fieldPath": self.field},
                "op": self.op.value,
                "value": encode_value(self.value),
            }
        }


@dataclass
class QueryBuilder:
    collection: str
    filters: List[FieldFilter] = field(default_factory=list)
    order_field: Optional[str] = None
    descending: bool = True
    tie_break: bool = False
    limit_count: Optional[int] = None
    select_fields: Optional[List[str]] = None
    start_after_values: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def for_kind(
        cls,
        model: Type[StoredDocument],
        projection: Projection = Projection.FULL,
    ) -> "QueryBuilder":
        return cls(collection=model.collection).project(model, projection)

    def where(self, field_path: str, op: Operator, value: Any) -> "QueryBuilder":
        self.filters.append(FieldFilter(field_path, Operator(op), value))
        return self

    def where_equal(self, field_path: str, value: Any) -> "QueryBuilder":
        return self.where(field_path, Operator.EQUAL, value)

    def where_between(
        self,
        field_path: str,
        start: Union[date, datetime],
        end: Union[date, datetime],
    ) -> "QueryBuilder":
        """지역 날짜 기준 [start 00:00, end 23:59:59.999999] 범위."""
        lower, upper = range_bounds(start, end)
        if lower > upper:
            raise QueryError(f"Empty range on {field_path}: {start} > {end}")
        self.where(field_path, Operator.GREATER_THAN_OR_EQUAL, lower)
        return self.where(field_path, Operator.LESS_THAN_OR_EQUAL, upper)

    def order_by(
        self, field_path: str, descending: bool = True, tie_break: bool = False
    ) -> "QueryBuilder":
        self.order_field = field_path
        self.descending = descending
        self.tie_break = tie_break
        return self

    def limit(self, count: Optional[int]) -> "QueryBuilder":
        if count is not None and count <= 0:
            raise QueryError(f"limit must be positive, got {count}")
        self.limit_count = count
        return self

    def project(
        self, model: Type[StoredDocument], projection: Projection
    ) -> "QueryBuilder":
        if Projection(projection) is Projection.LITE:
            self.select_fields = model.lite_fields()
        else:
            self.select_fields = None
        return self

    def start_after(self, value: Any, document_name: str) -> "QueryBuilder":
        # 커서는 (정렬값, 문서 name) 쌍 -> 같은 정렬값이 여러 개여도 중복/누락 없음
        self.start_after_values = [
            encode_value(value),
            {"referenceValue": document_name},
        ]
        self.tie_break = True
        return self

    def _range_field(self) -> Optional[str]:
        range_fields = {f.field for f in self.filters if f.op.is_range}
        if len(range_fields) > 1:
            raise QueryError(
                "Range filters are only allowed on a single field, got "
                + ", ".join(sorted(range_fields))
            )
        return next(iter(range_fields), None)

    def build(self) -> Dict[str, Any]:
        range_field = self._range_field()
        order_field = self.order_field
        if range_field is not None:
            if order_field is None:
                order_field = range_field
            elif order_field != range_field:
                raise QueryError(
                    f"Order field {order_field!r} must match range field {range_field!r}"
                )
        if self.start_after_values is not None and order_field is None:
            raise QueryError("A cursor requires an order field")

        query: Dict[str, Any] = {"from": [{"collectionId": self.collection}]}

        if len(self.filters) == 1:
            query["where"] = self.filters[0].to_wire()
        elif self.filters:
            query["where"] = {
                "compositeFilter": {
                    "op": "AND",
                    "filters": [f.to_wire() for f in self.filters],
                }
            }

        if order_field is not None:
            direction = "DESCENDING" if self.descending else "ASCENDING"
            query["orderBy"] = [
                {"field": {"fieldPath": order_field}, "direction": direction}
            ]
            if self.tie_break:
                query["orderBy"].append(
                    {"field": {"fieldPath": NAME_FIELD}, "direction": direction}
                )

        if self.start_after_values is not None:
            query["startAt"] = {"values": self.start_after_values, "before": False}

        if self.select_fields is not None:
            query["select"] = {
                "fields": [{"fieldPath": name} for name in self.select_fields]
            }

        if self.limit_count is not None:
            query["limit"] = self.limit_count

        return query
