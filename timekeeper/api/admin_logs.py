from typing import Optional

from fastapi import APIRouter, Depends, Query

from timekeeper.api.records import page_response, parse_cursor
from timekeeper.core.config import settings
from timekeeper.core.deps import get_bearer_token, get_firestore, to_http_error
from timekeeper.core.exceptions import TimekeeperError
from timekeeper.core.firestore import FirestoreClient
from timekeeper.core.repository import AdminLogRepository

router = APIRouter(
    prefix="/admin-logs",
    tags=["admin-logs"],
)


def get_admin_logs(
    client: FirestoreClient = Depends(get_firestore),
    token: str = Depends(get_bearer_token),
) -> AdminLogRepository:
    return AdminLogRepository(client, token)


@router.get("")
async def list_admin_logs(
    limit: int = Query(settings.RECENT_WINDOW, ge=1),
    repo: AdminLogRepository = Depends(get_admin_logs),
):
    return await repo.list_recent(limit)


@router.get("/page")
async def page_admin_logs(
    cursor: Optional[str] = None,
    pageSize: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    repo: AdminLogRepository = Depends(get_admin_logs),
):
    page_cursor = parse_cursor(cursor)
    try:
        page = await repo.next_page(page_cursor, pageSize)
    except TimekeeperError as exc:
        raise to_http_error(exc)
    return page_response(page)
