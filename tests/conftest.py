import itertools
import json
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from timekeeper.core.codec import decode_value, encode_record
from timekeeper.core.deps import get_firestore
from timekeeper.core.firestore import FirestoreClient
from timekeeper.main import app
from timekeeper.schemas.common import StoredDocument

BASE_URL = "https://firestore.test/v1"
DOCUMENTS_PATH = "projects/test-project/databases/(default)/documents"
TOKEN = "test-token"
AUTH_HEADERS = {"Authorization": f"Bearer {TOKEN}"}

_MISSING = object()


def _error(code: int, status_name: str) -> httpx.Response:
    return httpx.Response(
        code, json={"error": {"code": code, "message": status_name, "status": status_name}}
    )


class FakeFirestore:
    """
    Firestore REST API 일부를 메모리에서 흉내낸다 (runQuery / get / create / patch / delete).
    """

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_with: Optional[int] = None
        self.fail_writes_to: Optional[str] = None
        self.fail_queries_on: Optional[str] = None
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    # ---- seeding ----

    def _tick(self) -> str:
        return f"2024-01-01T00:00:00.{next(self._clock):06d}Z"

    def name_of(self, collection: str, doc_id: str) -> str:
        return f"{DOCUMENTS_PATH}/{collection}/{doc_id}"

    def put(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> str:
        stamp = self._tick()
        self.collections.setdefault(collection, {})[doc_id] = {
            "name": self.name_of(collection, doc_id),
            "fields": fields,
            "createTime": stamp,
            "updateTime": stamp,
        }
        return doc_id

    def seed(self, record: StoredDocument, doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or record.id or f"seed{next(self._ids):04d}"
        return self.put(record.collection, doc_id, encode_record(record))

    def docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.get(collection, {})

    def field(self, collection: str, doc_id: str, name: str) -> Any:
        return decode_value(self.docs(collection)[doc_id]["fields"].get(name))

    # ---- transport ----

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return _error(401, "UNAUTHENTICATED")
        if self.fail_with is not None:
            return _error(self.fail_with, "UNAVAILABLE")

        path = unquote(request.url.path)
        rest = path.split("/documents", 1)[1]
        if rest == ":runQuery":
            return self._run_query(json.loads(request.content)["structuredQuery"])

        parts = [p for p in rest.split("/") if p]
        if request.method == "POST" and len(parts) == 1:
            return self._create(parts[0], json.loads(request.content))
        collection, doc_id = parts[0], parts[1]
        if request.method == "GET":
            doc = self.docs(collection).get(doc_id)
            return httpx.Response(200, json=doc) if doc else _error(404, "NOT_FOUND")
        if request.method == "PATCH":
            return self._patch(collection, doc_id, request)
        if request.method == "DELETE":
            self.docs(collection).pop(doc_id, None)
            return httpx.Response(200, json={})
        return _error(400, "INVALID_ARGUMENT")

    def _create(self, collection: str, body: Dict[str, Any]) -> httpx.Response:
        if self.fail_writes_to == collection:
            return _error(503, "UNAVAILABLE")
        doc_id = f"auto{next(self._ids):04d}"
        self.put(collection, doc_id, body.get("fields") or {})
        return httpx.Response(200, json=self.docs(collection)[doc_id])

    def _patch(
        self, collection: str, doc_id: str, request: httpx.Request
    ) -> httpx.Response:
        if self.fail_writes_to == collection:
            return _error(503, "UNAVAILABLE")
        params = request.url.params
        doc = self.docs(collection).get(doc_id)
        if params.get("currentDocument.exists") == "true" and doc is None:
            return _error(404, "NOT_FOUND")
        expected = params.get("currentDocument.updateTime")
        if expected is not None and (doc is None or doc["updateTime"] != expected):
            return _error(400, "FAILED_PRECONDITION")

        fields = json.loads(request.content).get("fields") or {}
        current = dict(doc["fields"]) if doc else {}
        for path in params.get_list("updateMask.fieldPaths"):
            if path in fields:
                current[path] = fields[path]
            else:
                current.pop(path, None)
        if doc is None:
            self.put(collection, doc_id, current)
        else:
            doc["fields"] = current
            doc["updateTime"] = self._tick()
        return httpx.Response(200, json=self.docs(collection)[doc_id])

    # ---- query evaluation ----

    def _run_query(self, query: Dict[str, Any]) -> httpx.Response:
        collection = query["from"][0]["collectionId"]
        if self.fail_queries_on == collection:
            return _error(503, "UNAVAILABLE")
        docs = list(self.docs(collection).values())

        where = query.get("where")
        if where is not None:
            docs = [d for d in docs if self._matches(d, where)]

        orders: List[Tuple[str, bool]] = [
            (o["field"]["fieldPath"], o.get("direction") == "DESCENDING")
            for o in query.get("orderBy", [])
        ]
        # 정렬 필드가 없는 문서는 결과에서 빠진다
        docs = [
            d
            for d in docs
            if all(self._value(d, f) is not _MISSING for f, _ in orders)
        ]
        for field_path, desc in reversed(orders):
            docs.sort(key=lambda d, f=field_path: self._value(d, f), reverse=desc)

        start = query.get("startAt")
        if start is not None:
            cursor = [self._cursor_value(v) for v in start["values"]]
            docs = [d for d in docs if self._after(d, orders, cursor)]

        if "limit" in query:
            docs = docs[: query["limit"]]

        select = query.get("select")
        results = []
        for d in docs:
            out = dict(d)
            if select is not None:
                keep = {f["fieldPath"] for f in select.get("fields", [])}
                out["fields"] = {k: v for k, v in d["fields"].items() if k in keep}
            results.append({"document": out, "readTime": "2024-01-01T00:00:00Z"})
        if not results:
            results.append({"readTime": "2024-01-01T00:00:00Z"})
        return httpx.Response(200, json=results)

    @staticmethod
    def _value(doc: Dict[str, Any], field_path: str) -> Any:
        if field_path == "__name__":
            return doc["name"]
        raw = doc["fields"].get(field_path, _MISSING)
        return _MISSING if raw is _MISSING else decode_value(raw)

    @staticmethod
    def _cursor_value(value: Dict[str, Any]) -> Any:
        if "referenceValue" in value:
            return value["referenceValue"]
        return decode_value(value)

    def _after(self, doc: Dict[str, Any], orders, cursor) -> bool:
        for (field_path, desc), bound in zip(orders, cursor):
            value = self._value(doc, field_path)
            if value == bound:
                continue
            return value < bound if desc else value > bound
        # 커서와 완전히 같은 문서는 before=False라서 제외
        return False

    def _matches(self, doc: Dict[str, Any], where: Dict[str, Any]) -> bool:
        if "compositeFilter" in where:
            return all(self._matches(doc, f) for f in where["compositeFilter"]["filters"])
        flt = where["fieldFilter"]
        value = self._value(doc, flt["field"]["fieldPath"])
        if value is _MISSING:
            return False
        target = decode_value(flt["value"])
        op = flt["op"]
        if op == "EQUAL":
            return value == target
        if value is None or target is None:
            return False
        if op == "LESS_THAN":
            return value < target
        if op == "LESS_THAN_OR_EQUAL":
            return value <= target
        if op == "GREATER_THAN":
            return value > target
        if op == "GREATER_THAN_OR_EQUAL":
            return value >= target
        raise AssertionError(f"unsupported op {op}")


@pytest.fixture()
def fake_store() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture()
async def http_client(fake_store: FakeFirestore) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(fake_store.handle),
        base_url=BASE_URL,
    ) as client:
        yield client


@pytest.fixture()
def firestore(http_client: httpx.AsyncClient) -> FirestoreClient:
    return FirestoreClient(http_client, documents_path=DOCUMENTS_PATH)


@pytest.fixture()
async def api(firestore: FirestoreClient) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app (Firestore는 fake로 교체)."""
    app.dependency_overrides[get_firestore] = lambda: firestore
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
