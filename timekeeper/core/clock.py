from datetime import date, datetime, time, timezone
from functools import lru_cache
from typing import Tuple, Union
from zoneinfo import ZoneInfo

from timekeeper.core.config import settings


@lru_cache(maxsize=None)
def local_tz(name: str = "") -> ZoneInfo:
    """
    저장소에는 timezone이 없으므로 모든 날짜 계산은 배포 지역 시간 하나로 통일.
    """
    return ZoneInfo(name or settings.LOCAL_TIMEZONE)


def now() -> datetime:
    return datetime.now(local_tz())


def to_local(value: datetime) -> datetime:
    # naive datetime은 지역 시간으로 간주
    if value.tzinfo is None:
        return value.replace(tzinfo=local_tz())
    return value.astimezone(local_tz())


def as_instant(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return to_local(value)
    return datetime.combine(value, time.min, tzinfo=local_tz())


def day_bounds(value: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """해당 지역 날짜의 00:00:00 ~ 23:59:59.999999."""
    day = to_local(value).date() if isinstance(value, datetime) else value
    start = datetime.combine(day, time.min, tzinfo=local_tz())
    end = datetime.combine(day, time.max, tzinfo=local_tz())
    return start, end


def range_bounds(
    start: Union[date, datetime], end: Union[date, datetime]
) -> Tuple[datetime, datetime]:
    return day_bounds(start)[0], day_bounds(end)[1]


def format_timestamp(value: datetime) -> str:
    """RFC 3339 UTC ("Z") 문자열. 마이크로초가 0이면 생략."""
    utc = to_local(value).astimezone(timezone.utc)
    if utc.microsecond:
        return utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(raw: str) -> datetime:
    """
    Firestore timestampValue 파싱. 나노초(9자리)는 마이크로초로 자른다.
    파싱 실패 시 ValueError.
    """
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        for ch in rest:
            if not ch.isdigit():
                break
            digits += ch
        suffix = rest[len(digits):]
        text = f"{head}.{digits[:6].ljust(6, '0')}{suffix}"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(local_tz())
