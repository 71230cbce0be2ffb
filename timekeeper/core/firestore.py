import logging
from typing import Any, Dict, List, Optional

import httpx

from timekeeper.core.config import settings
from timekeeper.core.exceptions import (
    Conflict,
    DocumentNotFound,
    Malformed,
    TransportError,
    Unauthenticated,
    Unavailable,
)

logger = logging.getLogger(__name__)

_http: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """
    싱글톤 패턴으로 Firestore REST용 httpx 클라이언트 생성.
    """
    global _http
    if _http is None:
        _http = httpx.AsyncClient(
            base_url=settings.FIRESTORE_BASE_URL,
            timeout=settings.HTTP_TIMEOUT,
        )
    return _http


async def close_http_client() -> None:
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


def get_client() -> "FirestoreClient":
    return FirestoreClient(get_http_client())


def _error_status(resp: httpx.Response) -> str:
    # Firestore 에러 바디: {"error": {"code": 400, "message": "...", "status": "FAILED_PRECONDITION"}}
    try:
        body = resp.json()
    except ValueError:
        return ""
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("status", ""))
    return ""


class FirestoreClient:
    """
    Firestore REST API 호출. 모든 요청은 호출자의 bearer token으로 인증한다.
    실패는 TransportError 하위 타입으로 올라간다 (재시도 없음).
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        documents_path: Optional[str] = None,
    ) -> None:
        self._http = http
        self.documents_path = documents_path or settings.documents_path

    def document_name(self, collection: str, doc_id: str) -> str:
        return f"{self.documents_path}/{collection}/{doc_id}"

    async def run_query(
        self, structured_query: Dict[str, Any], token: str
    ) -> List[Dict[str, Any]]:
        resp = await self._request(
            "POST",
            f"/{self.documents_path}:runQuery",
            token,
            json={"structuredQuery": structured_query},
        )
        data = self._json(resp)
        if not isinstance(data, list):
            raise Malformed("runQuery response is not a list")

        documents = []
        for item in data:
            if not isinstance(item, dict):
                raise Malformed("runQuery envelope is not an object")
            doc = item.get("document")
            if doc is None:
                # readTime만 있는 envelope (결과 없음/스트림 끝)
                continue
            if not isinstance(doc, dict) or "name" not in doc:
                raise Malformed("runQuery document has no name")
            documents.append(doc)
        return documents

    async def get_document(
        self, collection: str, doc_id: str, token: str
    ) -> Optional[Dict[str, Any]]:
        try:
            resp = await self._request(
                "GET", f"/{self.document_name(collection, doc_id)}", token
            )
        except DocumentNotFound:
            return None
        return self._document(resp)

    async def create_document(
        self, collection: str, fields: Dict[str, Any], token: str
    ) -> Dict[str, Any]:
        resp = await self._request(
            "POST",
            f"/{self.documents_path}/{collection}",
            token,
            json={"fields": fields},
        )
        return self._document(resp)

    async def patch_document(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        token: str,
        *,
        update_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        updateMask에 전달된 필드만 넣어서 나머지 필드는 건드리지 않는다.
        update_time이 있으면 precondition으로 사용 (불일치 시 Conflict).
        """
        params = [("updateMask.fieldPaths", name) for name in fields]
        if update_time is not None:
            params.append(("currentDocument.updateTime", update_time))
        else:
            params.append(("currentDocument.exists", "true"))

        resp = await self._request(
            "PATCH",
            f"/{self.document_name(collection, doc_id)}",
            token,
            params=params,
            json={"fields": fields},
            preconditioned=update_time is not None,
        )
        return self._document(resp)

    async def delete_document(self, collection: str, doc_id: str, token: str) -> None:
        await self._request("DELETE", f"/{self.document_name(collection, doc_id)}", token)

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        preconditioned: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        if not token:
            raise Unauthenticated("No bearer token supplied")

        headers = {"Authorization": f"Bearer {token}"}
        try:
            resp = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            raise Unavailable(f"Firestore unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise self._error_for(resp, preconditioned)
        return resp

    @staticmethod
    def _error_for(resp: httpx.Response, preconditioned: bool) -> TransportError:
        code = resp.status_code
        status_name = _error_status(resp)
        message = f"Firestore error {code} {status_name}".strip()

        if code in (401, 403):
            return Unauthenticated(message, code)
        if code == 404:
            return DocumentNotFound(message, code)
        if code == 409 or status_name == "ABORTED":
            return Conflict(message, code)
        if preconditioned and status_name == "FAILED_PRECONDITION":
            return Conflict(message, code)
        if code == 429 or code >= 500:
            return Unavailable(message, code)
        return Malformed(message, code)

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise Malformed("Firestore response is not JSON") from exc

    def _document(self, resp: httpx.Response) -> Dict[str, Any]:
        data = self._json(resp)
        if not isinstance(data, dict) or "name" not in data:
            raise Malformed("Firestore document has no name")
        return data
