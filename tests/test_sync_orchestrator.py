"""Tests for the vector sync state machine."""

import httpx
import pytest

from conftest import KBBackend, make_entry
from services.kb_sync.SyncOrchestrator import SyncOrchestrator
from shared.exceptions import BackendError, PreconditionFailedError
from shared.models.entry import SyncAction, VectorStatus


class TestSync:
    @pytest.mark.asyncio
    async def test_success_sets_synced_state(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries/a/sync", (200, {"success": True, "chunks_created": 2}))
        entry = make_entry("a", vector_status="failed", sync_error="old failure")

        outcome = await orchestrator.do_sync(entry)

        assert outcome.success
        assert outcome.chunks_created == 2
        assert entry.vector_status == VectorStatus.SYNCED
        assert entry.last_synced_at is not None
        assert entry.sync_error is None
        assert [e.action for e in entry.sync_history] == [SyncAction.VECTOR_SYNCED]

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_persisted(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries/a/sync", (500, {"detail": "embedding model offline"}))
        backend.on("PUT", "/api/kb/entries/a", (200, {"success": True}))
        entry = make_entry("a")

        outcome = await orchestrator.do_sync(entry)

        assert not outcome.success
        assert outcome.error == "embedding model offline"
        assert "stale" in outcome.message
        assert entry.vector_status == VectorStatus.FAILED
        assert entry.sync_error == "embedding model offline"
        assert entry.sync_history[-1].action == SyncAction.VECTOR_SYNC_FAILED
        assert entry.sync_history[-1].error == "embedding model offline"
        persisted = backend.json_body(backend.calls("PUT", "/api/kb/entries/a")[0])
        assert persisted == {"vectorStatus": "failed", "syncError": "embedding model offline"}

    @pytest.mark.asyncio
    async def test_failure_persistence_is_best_effort(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        def offline(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        backend.on("POST", "/api/kb/entries/a/sync", offline)
        backend.on("PUT", "/api/kb/entries/a", offline)
        entry = make_entry("a")

        outcome = await orchestrator.do_sync(entry)

        assert not outcome.success
        assert entry.vector_status == VectorStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries/a/sync", (200, {"success": False, "error": "busy"}))
        backend.on("PUT", "/api/kb/entries/a", (200, {"success": True}))
        entry = make_entry("a")

        await orchestrator.do_sync(entry)

        assert len(backend.calls("POST", "/api/kb/entries/a/sync")) == 1

    @pytest.mark.asyncio
    async def test_manual_retry(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries/a/sync", (200, {"success": True, "chunks_created": 1}))
        entry = make_entry("a", vector_status="failed", sync_error="busy")

        outcome = await orchestrator.do_retry(entry)

        assert outcome.success
        assert entry.is_synced()

    @pytest.mark.asyncio
    async def test_archived_entries_cannot_sync(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        with pytest.raises(PreconditionFailedError):
            await orchestrator.do_sync(make_entry("a", archived=True))
        assert backend.requests == []


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_mark_stale(self, orchestrator: SyncOrchestrator) -> None:
        entry = make_entry("a", synced=True)

        message = orchestrator.do_mark_stale(entry)

        assert entry.vector_status == VectorStatus.PENDING
        assert entry.sync_history == ()
        assert "stale" in message

    @pytest.mark.asyncio
    async def test_cascade_delete(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        backend.on("DELETE", "/api/kb/vectors/a", (200, {"success": True, "chunks_deleted": 3}))
        entry = make_entry("a", synced=True)

        deleted = await orchestrator.do_cascade_delete_vectors(entry, "Entry archived")

        assert deleted == 3
        assert entry.vector_status == VectorStatus.PENDING
        assert entry.last_synced_at is None
        assert entry.sync_history[-1].action == SyncAction.VECTOR_DELETED
        assert entry.sync_history[-1].reason == "Entry archived"

    @pytest.mark.asyncio
    async def test_cascade_delete_failure_leaves_entry(self, orchestrator: SyncOrchestrator, backend: KBBackend) -> None:
        backend.on("DELETE", "/api/kb/vectors/a", (502, {"error": "index unavailable"}))
        entry = make_entry("a", synced=True)

        with pytest.raises(BackendError):
            await orchestrator.do_cascade_delete_vectors(entry, "Entry archived")
        assert entry.is_synced()
        assert entry.sync_history == ()
