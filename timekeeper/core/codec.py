"""
Firestore wire 문서 <-> 파이썬 값 <-> 도메인 레코드 변환.

wire 값은 tagged union (stringValue / integerValue / doubleValue / booleanValue /
timestampValue / nullValue / mapValue / arrayValue) 형태.
- decode: 모르는 tag나 깨진 값은 예외 대신 None
- encode: UNSET 필드는 payload에서 제거, None은 명시적 nullValue
"""
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from timekeeper.core.clock import as_instant, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class _Unset:
    """부분 업데이트에서 "전달하지 않음"을 나타내는 sentinel (None = 값 지우기)."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    # bool은 int의 서브클래스라 먼저 검사
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, Enum):
        return encode_value(value.value)
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (datetime, date)):
        return {"timestampValue": format_timestamp(as_instant(value))}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {
            "arrayValue": {
                "values": [encode_value(v) for v in value if v is not UNSET]
            }
        }
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def decode_value(value: Any) -> Any:
    if not isinstance(value, Mapping):
        logger.debug("Wire value is not an object: %r", value)
        return None

    try:
        if "stringValue" in value:
            return str(value["stringValue"])
        if "integerValue" in value:
            # int64는 wire에서 문자열
            return int(value["integerValue"])
        if "doubleValue" in value:
            return float(value["doubleValue"])
        if "booleanValue" in value:
            return bool(value["booleanValue"])
        if "timestampValue" in value:
            return parse_timestamp(value["timestampValue"])
        if "nullValue" in value:
            return None
        if "mapValue" in value:
            return decode_fields((value["mapValue"] or {}).get("fields") or {})
        if "arrayValue" in value:
            values = (value["arrayValue"] or {}).get("values") or []
            return [decode_value(v) for v in values]
    except (TypeError, ValueError, AttributeError) as exc:
        logger.debug("Undecodable wire value %r: %s", value, exc)
        return None

    logger.debug("Unsupported wire value tag(s): %s", list(value))
    return None


def encode_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(val) for key, val in data.items() if val is not UNSET}


def decode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(val) for key, val in fields.items()}


def document_id(name: str) -> str:
    return name.rstrip("/").rsplit("/", 1)[-1]


def decode_document(doc: Mapping[str, Any]) -> Dict[str, Any]:
    data = decode_fields(doc.get("fields") or {})
    if doc.get("name"):
        data["id"] = document_id(doc["name"])
    return data


def record_fields(record: BaseModel, *, drop_none: bool = True) -> Dict[str, Any]:
    """레코드 -> 저장할 필드 dict (id 제외). 생성 시에는 None 필드를 쓰지 않는다."""
    data = record.model_dump(exclude={"id"})
    if drop_none:
        data = {k: v for k, v in data.items() if v is not None}
    return data


def encode_record(record: BaseModel, *, drop_none: bool = True) -> Dict[str, Any]:
    return encode_fields(record_fields(record, drop_none=drop_none))


def decode_record(model: Type[M], doc: Mapping[str, Any]) -> Optional[M]:
    data = decode_document(doc)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        # 한 문서가 스키마에 안 맞아도 페이지 전체를 버리지 않는다
        logger.warning(
            "Skipping %s document %s: %d validation error(s)",
            model.__name__,
            data.get("id"),
            exc.error_count(),
        )
        return None


def decode_records(model: Type[M], docs: Iterable[Mapping[str, Any]]) -> List[M]:
    records = []
    for doc in docs:
        record = decode_record(model, doc)
        if record is not None:
            records.append(record)
    return records
