from functools import partial
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from timekeeper.core.exceptions import (
    Conflict,
    DocumentNotFound,
    InvalidCursor,
    InvalidTransition,
    InvalidUpdate,
    QueryError,
    ReconciliationError,
    TimekeeperError,
    Unauthenticated,
)
from timekeeper.core.firestore import FirestoreClient, get_client
from timekeeper.core.rabbitmq import publish_status_change
from timekeeper.core.workflow import ApprovalWorkflow

BEARER_PREFIX = "bearer "


async def get_bearer_token(
    authorization: Optional[str] = Header(default=None),
) -> str:
    """
    호출자의 Firebase ID token을 그대로 Firestore로 전달한다.
    토큰이 없으면 저장소를 호출하지 않고 401.
    """
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_firestore() -> FirestoreClient:
    return get_client()


def get_workflow(
    request: Request,
    client: FirestoreClient = Depends(get_firestore),
    token: str = Depends(get_bearer_token),
) -> ApprovalWorkflow:
    publisher = None
    if getattr(request.app.state, "rabbit_exchange", None) is not None:
        publisher = partial(publish_status_change, request.app)
    return ApprovalWorkflow(client, token, publisher=publisher)


def to_http_error(exc: TimekeeperError) -> HTTPException:
    if isinstance(exc, Unauthenticated):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(exc, DocumentNotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, Conflict):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (InvalidTransition, QueryError, InvalidCursor)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, InvalidUpdate):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, ReconciliationError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": exc.message, "requestId": exc.request_id},
        )
    else:
        # Unavailable / Malformed
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=exc.message)
