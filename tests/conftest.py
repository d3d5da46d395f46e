"""Pytest configuration and fixtures."""

import json
import threading
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from waterdesk.api import ApiClient
from waterdesk.config import Settings, reset_settings
from waterdesk.resources import RESOURCES
from waterdesk.store import ConsoleStore

BASE_URL = "http://backend.test/api"

ID_FIELDS = {d.endpoint: d.id_field for d in RESOURCES.values()}


class FakeBackend:
    """In-memory REST backend speaking the console's resource contract."""

    def __init__(self):
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.requests: List[Tuple[str, str]] = []
        self._next_id = 1000
        self._lock = threading.Lock()

    def seed(self, endpoint: str, records: List[Dict[str, Any]]) -> None:
        self.collections[endpoint] = [dict(r) for r in records]

    def fail(self, method: str, path: str, status: int = 500, body: Any = None) -> None:
        """Make ``method path`` (e.g. ``DELETE users/3``) answer with an error."""
        self.failures[(method, path)] = (status, body)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/api/", 1)[1].strip("/")
        with self._lock:
            self.requests.append((request.method, path))
            if (request.method, path) in self.failures:
                status, body = self.failures[(request.method, path)]
                if body is None:
                    return httpx.Response(status, text="boom")
                return httpx.Response(status, json=body)

            endpoint, _, record_id = path.partition("/")
            id_field = ID_FIELDS.get(endpoint, "_id")
            items = self.collections.setdefault(endpoint, [])

            if request.method == "GET" and not record_id:
                return httpx.Response(200, json=items)
            if request.method == "POST" and not record_id:
                record = json.loads(request.content)
                self._next_id += 1
                record[id_field] = str(self._next_id)
                items.append(record)
                return httpx.Response(201, json=record)

            index = next((i for i, r in enumerate(items) if str(r.get(id_field)) == record_id), None)
            if index is None:
                return httpx.Response(404, json={"error": "Not found"})
            if request.method == "PUT":
                record = {**items[index], **json.loads(request.content), id_field: items[index][id_field]}
                items[index] = record
                return httpx.Response(200, json=record)
            if request.method == "DELETE":
                del items[index]
                return httpx.Response(204)
            return httpx.Response(405, json={"error": "Method not allowed"})


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_base_url=BASE_URL,
        local_storage_path=str(tmp_path / "local_storage.json"),
        page_size=12,
        audit_mutations=False,
        log_level="WARNING",
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def api(backend):
    client = ApiClient(BASE_URL, transport=httpx.MockTransport(backend.handle))
    yield client
    client.close()


@pytest.fixture
def store(settings, api) -> ConsoleStore:
    return ConsoleStore(settings, api=api)


def make_users(count: int, start: int = 1) -> List[Dict[str, Any]]:
    types = ["Residential", "Commercial", "Industrial"]
    return [
        {
            "UserID": str(i),
            "Name": f"User {i:02d}",
            "Address": f"{i} Main St",
            "Phone": f"{5550000000 + i}",
            "Email": f"user{i}@example.com",
            "ConnectionType": types[i % 3],
        }
        for i in range(start, start + count)
    ]


def connection(cid: str, user_id: str, status: str = "Active", when: Optional[str] = "2024-01-01") -> Dict[str, Any]:
    return {
        "ConnectionID": cid,
        "UserID": user_id,
        "ConnectionDate": when,
        "MeterNumber": f"MTR-{cid}",
        "Status": status,
        "SourceID": "S1",
    }
