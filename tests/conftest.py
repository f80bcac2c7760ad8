"""Pytest configuration and shared fixtures."""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio
import pytz

from services.kb_sync.AuditTrailRecorder import AuditTrailRecorder
from services.kb_sync.BulkOperationCoordinator import BulkOperationCoordinator
from services.kb_sync.EntryLifecycleService import EntryLifecycleService
from services.kb_sync.EntrySession import EntrySession
from services.kb_sync.SyncOrchestrator import SyncOrchestrator
from shared.clients.kb.duplicates.DuplicateDetector import DuplicateDetector
from shared.clients.kb.entries.EntryStoreClient import EntryStoreClient
from shared.clients.kb.vectors.VectorIndexClient import VectorIndexClient
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.config import KBApiConfig
from shared.models.entry import Entry, EntryMetadata

BASE_URL = "http://kb.test"

Route = tuple[int, Any] | Callable[[httpx.Request], Any]


class KBBackend:
    """In-memory stand-in for the KB backend, served through httpx.MockTransport.

    Routes are keyed by (method, path). A route is either a ``(status, body)``
    tuple or a callable receiving the request and returning an httpx.Response
    (or raising an httpx transport error).
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, route: Route) -> None:
        self.routes[(method.upper(), path)] = route

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def json_body(self, request: httpx.Request) -> dict:
        return json.loads(request.content)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"success": False, "error": f"No route for {request.method} {request.url.path}"})
        if callable(route):
            result = route(request)
            if hasattr(result, "__await__"):
                result = await result
            return result
        status, body = route
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


class FakeEntryReader:
    """Entry store reader backed by a dict; hands out copies like a real store would."""

    def __init__(self) -> None:
        self.entries: dict[str, Entry] = {}
        self.booted = False

    def add(self, entry: Entry) -> Entry:
        self.entries[entry.id] = entry
        return entry

    def get_engine_name(self) -> str:
        return "fake"

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.booted = True

    async def close(self) -> None:
        self.booted = False

    async def do_list_active(self) -> list[Entry]:
        return [e.model_copy(deep=True) for e in self.entries.values() if not e.is_archived()]

    async def do_list_archived(self) -> list[Entry]:
        return [e.model_copy(deep=True) for e in self.entries.values() if e.is_archived()]

    async def do_fetch_entry(self, entry_id: str) -> Entry | None:
        entry = self.entries.get(entry_id)
        return entry.model_copy(deep=True) if entry is not None else None


class FixedClock:
    """Deterministic clock: starts at a fixed UTC instant and advances one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=pytz.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


def make_entry(entry_id: str, synced: bool = False, archived: bool = False, **overrides: Any) -> Entry:
    """Builds a definition entry with sensible defaults for tests."""
    fields: dict[str, Any] = {
        "id": entry_id,
        "type": "definition",
        "title": f"Term {entry_id}",
        "content": f"Term: Term {entry_id}",
        "raw_form_data": {"term": f"Term {entry_id}"},
        "metadata": EntryMetadata(category="listings"),
        "status": "archived" if archived else "active",
    }
    if synced:
        fields["vector_status"] = "synced"
        fields["last_synced_at"] = datetime(2024, 4, 1, tzinfo=pytz.utc)
    fields.update(overrides)
    return Entry(**fields)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of the tests."""
    for key in ("KB_API_BASE_URL", "KB_BULK_CONCURRENCY", "KB_TIMEOUT", "ENTRYSTORE_ENGINE"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("kb_admin.tests")))


@pytest.fixture
def api_config() -> KBApiConfig:
    return KBApiConfig(base_url=BASE_URL)


@pytest.fixture
def backend() -> KBBackend:
    return KBBackend()


@pytest.fixture
def entry_reader() -> FakeEntryReader:
    return FakeEntryReader()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest_asyncio.fixture
async def entry_store(helper_config, api_config, entry_reader, backend):
    client = EntryStoreClient(helper_config=helper_config, entry_reader=entry_reader, api_config=api_config)
    await client.boot(transport=backend.transport())
    yield client
    await client.close()


@pytest_asyncio.fixture
async def vector_client(helper_config, api_config, backend):
    client = VectorIndexClient(helper_config=helper_config, api_config=api_config)
    await client.boot(transport=backend.transport())
    yield client
    await client.close()


@pytest_asyncio.fixture
async def duplicate_detector(helper_config, api_config, backend):
    client = DuplicateDetector(helper_config=helper_config, api_config=api_config)
    await client.boot(transport=backend.transport())
    yield client
    await client.close()


@pytest.fixture
def session(helper_config, entry_reader) -> EntrySession:
    return EntrySession(helper_config=helper_config, entry_reader=entry_reader)


@pytest.fixture
def orchestrator(helper_config, vector_client, entry_store, clock) -> SyncOrchestrator:
    return SyncOrchestrator(helper_config=helper_config, vector_client=vector_client, entry_store=entry_store, clock=clock)


@pytest.fixture
def lifecycle(helper_config, session, entry_store, entry_reader, duplicate_detector, orchestrator, clock) -> EntryLifecycleService:
    return EntryLifecycleService(
        helper_config=helper_config,
        session=session,
        entry_store=entry_store,
        entry_reader=entry_reader,
        duplicate_detector=duplicate_detector,
        orchestrator=orchestrator,
        audit_recorder=AuditTrailRecorder(clock=clock),
    )


@pytest.fixture
def bulk(helper_config, session, entry_store, vector_client, orchestrator, clock) -> BulkOperationCoordinator:
    return BulkOperationCoordinator(
        helper_config=helper_config,
        session=session,
        entry_store=entry_store,
        vector_client=vector_client,
        orchestrator=orchestrator,
        audit_recorder=AuditTrailRecorder(clock=clock),
    )
