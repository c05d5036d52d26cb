"""Shared fakes for the closet tests: an in-memory Supabase client and a Gemini stub."""

from __future__ import annotations

import copy
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from closet.core.database_ops import ClosetDatabase
from closet.core.image_inputs import ImageInput
from closet.core.storage_ops import ClosetStorage

IMAGE_B64 = "aW1hZ2UtYnl0ZXM="  # b"image-bytes"


class _Response:
    def __init__(self, data: List[Dict[str, Any]]) -> None:
        self.data = data
        self.count = len(data)


class _Query:
    def __init__(self, table: "_Table") -> None:
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._on_conflict: List[str] = []
        self._filters: List[Tuple[str, Any]] = []
        self._order: Optional[Tuple[str, bool]] = None
        self._range: Optional[Tuple[int, int]] = None
        self._limit: Optional[int] = None

    def select(self, *columns: str, **kwargs: Any) -> "_Query":
        self._op = "select"
        return self

    def insert(self, payload: Dict[str, Any]) -> "_Query":
        self._op, self._payload = "insert", payload
        return self

    def upsert(self, payload: Dict[str, Any], on_conflict: str = "") -> "_Query":
        self._op, self._payload = "upsert", payload
        self._on_conflict = [col for col in on_conflict.split(",") if col]
        return self

    def update(self, payload: Dict[str, Any]) -> "_Query":
        self._op, self._payload = "update", payload
        return self

    def delete(self) -> "_Query":
        self._op = "delete"
        return self

    def eq(self, column: str, value: Any) -> "_Query":
        self._filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "_Query":
        self._order = (column, desc)
        return self

    def range(self, start: int, end: int) -> "_Query":
        self._range = (start, end)
        return self

    def limit(self, count: int) -> "_Query":
        self._limit = count
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self) -> _Response:
        table = self._table
        if table.fail:
            raise RuntimeError(f"{table.name} unavailable")

        if self._op == "insert":
            return _Response([table.add(self._payload)])

        if self._op == "upsert":
            for row in table.rows:
                if all(row.get(col) == self._payload.get(col) for col in self._on_conflict):
                    row.update(self._payload)
                    return _Response([copy.deepcopy(row)])
            return _Response([table.add(self._payload)])

        matched = [row for row in table.rows if self._matches(row)]

        if self._op == "update":
            for row in matched:
                row.update(self._payload)
            return _Response(copy.deepcopy(matched))

        if self._op == "delete":
            table.rows = [row for row in table.rows if row not in matched]
            return _Response(copy.deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda row: row.get(column) or "", reverse=desc)
        if self._range:
            start, end = self._range
            matched = matched[start : end + 1]
        if self._limit is not None:
            matched = matched[: self._limit]
        return _Response(copy.deepcopy(matched))


class _Table:
    def __init__(self, name: str, owner: "FakeSupabase") -> None:
        self.name = name
        self.rows: List[Dict[str, Any]] = []
        self.fail = False
        self._owner = owner

    def add(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        stamp = self._owner.next_timestamp()
        row = {"id": f"{self.name}-{len(self.rows) + 1}", "created_at": stamp, "updated_at": stamp}
        if self.name == "generated_outfits":
            row["is_liked"] = False
        row.update(payload)
        self.rows.append(row)
        return copy.deepcopy(row)


class _Bucket:
    def __init__(self, name: str, storage: "_Storage") -> None:
        self.name = name
        self._storage = storage

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None) -> dict:
        if self._storage.fail_uploads:
            raise RuntimeError("storage unavailable")
        self._storage.objects[(self.name, path)] = file
        self._storage.upload_options.append(file_options or {})
        return {"path": path}

    def remove(self, paths: List[str]) -> list:
        for path in paths:
            self._storage.objects.pop((self.name, path), None)
            self._storage.removed.append((self.name, path))
        return []

    def get_public_url(self, path: str) -> str:
        return f"https://cdn.test/storage/v1/object/public/{self.name}/{path}"


class _Storage:
    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.removed: List[Tuple[str, str]] = []
        self.upload_options: List[dict] = []
        self.fail_uploads = False

    def from_(self, bucket: str) -> _Bucket:
        return _Bucket(bucket, self)


class FakeSupabase:
    """Just enough of the supabase-py surface for the closet adapters."""

    def __init__(self) -> None:
        self.tables: Dict[str, _Table] = {}
        self.storage = _Storage()
        self._tick = 0

    def next_timestamp(self) -> str:
        self._tick += 1
        return f"2024-01-01T00:00:00.{self._tick:06d}+00:00"

    def table(self, name: str) -> _Query:
        if name not in self.tables:
            self.tables[name] = _Table(name, self)
        return _Query(self.tables[name])

    def rows(self, name: str) -> List[Dict[str, Any]]:
        self.table(name)
        return self.tables[name].rows

    def fail_table(self, name: str) -> None:
        self.table(name)
        self.tables[name].fail = True


class GeminiStub:
    """Scripted generateContent endpoint served through httpx.MockTransport."""

    def __init__(self, *responses: Tuple[int, Dict[str, Any]]) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def payload(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


def image_response(data: str = IMAGE_B64, mime_type: str = "image/png") -> Tuple[int, dict]:
    return 200, {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"mimeType": mime_type, "data": data}}]}}
        ]
    }


def text_response(*texts: str) -> Tuple[int, dict]:
    return 200, {"candidates": [{"content": {"parts": [{"text": text} for text in texts]}}]}


def quota_error(retry_delay: Optional[str] = None) -> Tuple[int, dict]:
    details = []
    if retry_delay is not None:
        details.append(
            {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": retry_delay}
        )
    return 429, {
        "error": {
            "code": 429,
            "message": "Resource has been exhausted (e.g. check quota).",
            "status": "RESOURCE_EXHAUSTED",
            "details": details,
        }
    }


def server_error(message: str = "Internal error encountered.") -> Tuple[int, dict]:
    return 500, {"error": {"code": 500, "message": message, "status": "INTERNAL"}}


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_image_loader(
    calls: Optional[List[str]] = None, local: Optional[List[str]] = None
) -> Callable:
    async def _load(reference: str, label: str = "image", allow_local: bool = False) -> ImageInput:
        if calls is not None:
            calls.append(reference)
        if local is not None and allow_local:
            local.append(reference)
        return ImageInput(mime_type="image/png", data=IMAGE_B64)

    return _load


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def database(fake_supabase: FakeSupabase) -> ClosetDatabase:
    return ClosetDatabase(fake_supabase)


@pytest.fixture
def storage(fake_supabase: FakeSupabase) -> ClosetStorage:
    return ClosetStorage(fake_supabase)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
