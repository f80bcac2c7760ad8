"""Tests for the KB backend clients: entry store writes, vector index and duplicate check."""

import httpx
import pytest

from conftest import KBBackend, make_entry
from shared.clients.kb.duplicates.DuplicateDetector import DuplicateDetector
from shared.clients.kb.entries.EntryStoreClient import EntryStoreClient
from shared.clients.kb.models.DocumentUpload import DocumentUpload
from shared.clients.kb.vectors.VectorIndexClient import VectorIndexClient
from shared.exceptions import BackendError, NetworkError, NotFoundError, PreconditionFailedError, ValidationError
from shared.models.entry import EntryDraft, EntryMetadata

AUDIT = {"createdBy": "u1", "createdByEmail": "u1@example.com", "createdByName": "User One"}


class TestEntryStoreClient:
    @pytest.mark.asyncio
    async def test_create_sends_derived_fields(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries", (200, {"success": True, "entry_id": "new-1"}))
        draft = EntryDraft(
            type="error",
            raw_form_data={"issue_title": "Login fails", "error_code": "E401", "causes": [{"cause_description": "bad password"}]},
            metadata=EntryMetadata(category="access", tags="login, auth"),
        )

        entry_id = await entry_store.do_create(draft, AUDIT)

        assert entry_id == "new-1"
        body = backend.json_body(backend.calls("POST", "/api/kb/entries")[0])
        assert body["type"] == "error"
        assert body["title"] == "Login fails"
        assert body["content"].startswith("Error: Login fails")
        assert body["rawFormData"]["issue_title"] == "Login fails"
        assert body["metadata"]["category"] == "access"
        assert body["metadata"]["tags"] == ["login", "auth"]
        assert body["metadata"]["entryType"] == "error"
        assert body["metadata"]["error_code"] == "E401"
        assert body["createdBy"] == "u1"

    @pytest.mark.asyncio
    async def test_missing_category_fails_before_network(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        draft = EntryDraft(type="definition", raw_form_data={"term": "Escrow"}, metadata=EntryMetadata(category=" "))

        with pytest.raises(ValidationError, match="category"):
            await entry_store.do_create(draft, AUDIT)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_form_data_mismatch_fails_before_network(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        draft = EntryDraft(type="how_to", raw_form_data={"steps": "oops"}, metadata=EntryMetadata(category="x"))

        with pytest.raises(ValidationError):
            await entry_store.do_create(draft, AUDIT)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_create_rejected_by_backend(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries", (200, {"success": False, "error": "Firestore unavailable"}))
        draft = EntryDraft(type="definition", raw_form_data={"term": "Escrow"}, metadata=EntryMetadata(category="x"))

        with pytest.raises(BackendError, match="Firestore unavailable"):
            await entry_store.do_create(draft, AUDIT)

    @pytest.mark.asyncio
    async def test_update_missing_entry(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        backend.on("PUT", "/api/kb/entries/gone", (404, {"detail": "Entry not found"}))

        with pytest.raises(NotFoundError) as exc_info:
            await entry_store.do_update("gone", {"title": "x"})
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_network_error(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend.on("POST", "/api/kb/entries/a/restore", refuse)

        with pytest.raises(NetworkError):
            await entry_store.do_restore("a")

    @pytest.mark.asyncio
    async def test_unreadable_response_is_a_network_error(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        def garbled(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

        backend.on("POST", "/api/kb/entries/a/restore", garbled)

        with pytest.raises(NetworkError):
            await entry_store.do_restore("a")

    @pytest.mark.asyncio
    async def test_update_payload_carries_top_level_copies(self, entry_store: EntryStoreClient) -> None:
        metadata = EntryMetadata(category="listings", userType="external", tags=["a"])

        payload = entry_store.get_update_payload("definition", {"term": "Escrow"}, metadata, {"lastModifiedBy": "u1"})

        assert payload["userType"] == "external"
        assert payload["category"] == "listings"
        assert payload["tags"] == ["a"]
        assert payload["title"] == "Escrow"
        assert payload["lastModifiedBy"] == "u1"

    @pytest.mark.asyncio
    async def test_permanent_delete_requires_archived(self, entry_store: EntryStoreClient, entry_reader, backend: KBBackend) -> None:
        entry_reader.add(make_entry("a"))

        with pytest.raises(PreconditionFailedError):
            await entry_store.do_permanently_delete("a")
        assert backend.calls("DELETE", "/api/kb/entries/a") == []

    @pytest.mark.asyncio
    async def test_permanent_delete_unknown_entry(self, entry_store: EntryStoreClient) -> None:
        with pytest.raises(NotFoundError):
            await entry_store.do_permanently_delete("missing")

    @pytest.mark.asyncio
    async def test_permanent_delete_archived(self, entry_store: EntryStoreClient, entry_reader, backend: KBBackend) -> None:
        entry_reader.add(make_entry("a", archived=True))
        backend.on("DELETE", "/api/kb/entries/a", (200, {"success": True}))

        await entry_store.do_permanently_delete("a")

        assert len(backend.calls("DELETE", "/api/kb/entries/a")) == 1

    @pytest.mark.asyncio
    async def test_upload_document(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/documents/upload", (200, {
            "success": True,
            "entry_id": "doc-1",
            "sections_extracted": 4,
            "sync_status": {"success": True, "chunks_created": 6},
        }))
        upload = DocumentUpload(title="Handbook", entry_type="how_to", metadata=EntryMetadata(category="onboarding", tags=["hr"]), auto_sync=False)

        result = await entry_store.do_upload_document(upload, "handbook.pdf", b"%PDF-1.4", "application/pdf")

        assert result.entry_id == "doc-1"
        assert result.sync_status.chunks_created == 6
        request = backend.calls("POST", "/api/kb/documents/upload")[0]
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="auto_sync"\r\n\r\nfalse' in request.content
        assert b'filename="handbook.pdf"' in request.content

    @pytest.mark.asyncio
    async def test_document_status(self, entry_store: EntryStoreClient, backend: KBBackend) -> None:
        backend.on("GET", "/api/kb/documents/status/doc-1", (200, {"success": True, "entry_id": "doc-1", "vector_status": "synced"}))

        status = await entry_store.do_fetch_document_status("doc-1")

        assert status.vector_status == "synced"


class TestVectorIndexClient:
    @pytest.mark.asyncio
    async def test_sync_returns_chunk_count(self, vector_client: VectorIndexClient, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries/abc123/sync", (200, {"success": True, "chunks_created": 3}))

        assert await vector_client.do_sync("abc123") == 3

    @pytest.mark.asyncio
    async def test_sync_failure(self, vector_client: VectorIndexClient, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/entries/abc123/sync", (200, {"success": False, "error": "embedding model offline"}))

        with pytest.raises(BackendError, match="embedding model offline"):
            await vector_client.do_sync("abc123")

    @pytest.mark.asyncio
    async def test_delete_by_chunk_id_targets_parent(self, vector_client: VectorIndexClient, backend: KBBackend) -> None:
        backend.on("DELETE", "/api/kb/vectors/abc123", (200, {"success": True, "chunks_deleted": 4}))

        by_chunk = await vector_client.do_delete("abc123_chunk_2")
        by_parent = await vector_client.do_delete("abc123")

        assert by_chunk == by_parent == 4
        paths = [r.url.path for r in backend.requests]
        assert paths == ["/api/kb/vectors/abc123", "/api/kb/vectors/abc123"]

    @pytest.mark.asyncio
    async def test_list_entries(self, vector_client: VectorIndexClient, backend: KBBackend) -> None:
        backend.on("GET", "/api/kb/vectors", (200, {"success": True, "entries": [
            {
                "entry_id": "abc123_chunk_1",
                "content_preview": "Step 1: ...",
                "metadata": {"parent_entry_id": "abc123", "chunk_section": "steps", "total_chunks": 3, "parent_title": "List a property", "entryType": "how_to"},
            },
            {"entry_id": "solo", "metadata": {"title": "Escrow"}},
        ]}))

        chunks = await vector_client.do_list_entries(limit=50)

        assert backend.requests[0].url.params["limit"] == "50"
        assert chunks[0].parent_entry_id == "abc123"
        assert chunks[0].position_index == 1
        assert chunks[0].section == "steps"
        assert chunks[0].title == "List a property"
        assert chunks[0].is_chunk()
        assert chunks[1].parent_entry_id == "solo"
        assert not chunks[1].is_chunk()

    @pytest.mark.asyncio
    async def test_list_entries_malformed(self, vector_client: VectorIndexClient, backend: KBBackend) -> None:
        backend.on("GET", "/api/kb/vectors", (200, {"success": True, "entries": {"not": "a list"}}))

        with pytest.raises(BackendError):
            await vector_client.do_list_entries()


class TestDuplicateDetector:
    @pytest.mark.asyncio
    async def test_sorted_by_score(self, duplicate_detector: DuplicateDetector, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/check-duplicates", (200, {"has_duplicates": True, "similar_entries": [
            {"id": "a", "title": "A", "type": "definition", "content_snippet": "...", "similarity_score": 0.62},
            {"id": "b", "title": "B", "type": "definition", "content_snippet": "...", "similarity_score": 0.94},
            {"id": "c", "title": "C", "type": "definition", "content_snippet": "...", "similarity_score": 0.77},
        ]}))

        candidates = await duplicate_detector.do_check("Escrow", "Term: Escrow", "definition")

        assert [c.similarity_score for c in candidates] == [0.94, 0.77, 0.62]
        body = backend.json_body(backend.requests[0])
        assert body == {"title": "Escrow", "content": "Term: Escrow", "type": "definition"}

    @pytest.mark.asyncio
    async def test_fail_open_on_server_error(self, duplicate_detector: DuplicateDetector, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/check-duplicates", (500, {"detail": "boom"}))

        assert await duplicate_detector.do_check("Escrow", "Term: Escrow", "definition") == []

    @pytest.mark.asyncio
    async def test_fail_open_on_network_error(self, duplicate_detector: DuplicateDetector, backend: KBBackend) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        backend.on("POST", "/api/kb/check-duplicates", timeout)

        assert await duplicate_detector.do_check("Escrow", "Term: Escrow", "definition") == []

    @pytest.mark.asyncio
    async def test_fail_open_on_undecodable_body(self, duplicate_detector: DuplicateDetector, backend: KBBackend) -> None:
        def garbled(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

        backend.on("POST", "/api/kb/check-duplicates", garbled)

        assert await duplicate_detector.do_check("Escrow", "Term: Escrow", "definition") == []

    @pytest.mark.asyncio
    async def test_fail_open_on_malformed_payload(self, duplicate_detector: DuplicateDetector, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/check-duplicates", (200, {"similar_entries": [{"id": "a", "similarity_score": 3}]}))

        assert await duplicate_detector.do_check("Escrow", "Term: Escrow", "definition") == []

    @pytest.mark.asyncio
    async def test_no_duplicates(self, duplicate_detector: DuplicateDetector, backend: KBBackend) -> None:
        backend.on("POST", "/api/kb/check-duplicates", (200, {"has_duplicates": False, "similar_entries": []}))

        assert await duplicate_detector.do_check("Escrow", "Term: Escrow", "definition") == []
