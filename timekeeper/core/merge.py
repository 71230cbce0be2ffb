from datetime import datetime, timezone
from typing import Dict, Iterable, List, TypeVar

from timekeeper.schemas.common import StoredDocument

D = TypeVar("D", bound=StoredDocument)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _anchor_key(record: StoredDocument) -> datetime:
    return record.anchor or _OLDEST


def merge_visible(pending: Iterable[D], recent: Iterable[D]) -> List[D]:
    """
    "pending 전체" + "최근 N개" 결과를 id 기준으로 합친다.
    - 오래된 pending 요청도 최근 N개 창 밖으로 밀려나지 않음
    - 같은 id는 한 번만 (뒤에 넣은 recent 쪽이 이김)
    - recency 필드 기준 내림차순
    """
    merged: Dict[str, D] = {}
    for record in pending:
        if record.id:
            merged[record.id] = record
    for record in recent:
        if record.id:
            merged[record.id] = record
    return sorted(merged.values(), key=_anchor_key, reverse=True)
