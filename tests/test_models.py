"""Tests for the entry model, its transitions and the outcome models."""

from datetime import datetime

import pydantic
import pytest
import pytz

from conftest import make_entry
from shared.clients.kb.models.DuplicateCandidate import DuplicateCandidate
from shared.clients.kb.models.VectorChunk import VectorChunk, chunk_position, resolve_parent_id
from shared.models.entry import EntryMetadata, SyncAction, VectorStatus
from shared.models.form_data import FORM_MODELS, EntryType
from shared.models.results import BulkResult, ItemResult

T1 = datetime(2024, 5, 1, 10, 0, tzinfo=pytz.utc)
T2 = datetime(2024, 5, 2, 10, 0, tzinfo=pytz.utc)


class TestEntryInvariants:
    def test_synced_requires_last_synced_at(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            make_entry("a", vector_status="synced")

    def test_synced_rejects_sync_error(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            make_entry("a", synced=True, sync_error="boom")

    def test_unknown_vector_status_is_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            make_entry("a", vector_status="syncing")

    def test_vector_status_values(self) -> None:
        assert {s.value for s in VectorStatus} == {"pending", "synced", "failed"}

    def test_timezone_less_timestamps_are_read_as_utc(self) -> None:
        entry = make_entry("a", archived_at="2024-05-02T10:00:00", created_at=datetime(2024, 5, 1, 10, 0))

        assert entry.archived_at == T2
        assert entry.created_at == T1
        assert entry.archived_at.tzinfo is not None

    def test_every_entry_type_has_a_form_model(self) -> None:
        assert set(FORM_MODELS) == set(EntryType)


class TestEntryTransitions:
    def test_sync_success(self) -> None:
        entry = make_entry("a", vector_status="failed", sync_error="old")

        entry.apply_sync_success(T1)

        assert entry.vector_status == VectorStatus.SYNCED
        assert entry.last_synced_at == T1
        assert entry.sync_error is None
        assert [e.action for e in entry.sync_history] == [SyncAction.VECTOR_SYNCED]

    def test_sync_failure_keeps_history(self) -> None:
        entry = make_entry("a")
        entry.apply_sync_success(T1)

        entry.apply_sync_failure("timeout", T2)

        assert entry.vector_status == VectorStatus.FAILED
        assert entry.sync_error == "timeout"
        assert [e.action for e in entry.sync_history] == [SyncAction.VECTOR_SYNCED, SyncAction.VECTOR_SYNC_FAILED]
        assert entry.sync_history[-1].error == "timeout"

    def test_stale_does_not_touch_history(self) -> None:
        entry = make_entry("a", synced=True)
        history_before = entry.sync_history

        entry.apply_stale()

        assert entry.vector_status == VectorStatus.PENDING
        assert entry.sync_history == history_before

    def test_vectors_deleted(self) -> None:
        entry = make_entry("a", synced=True)

        entry.apply_vectors_deleted("Entry archived", T1)

        assert entry.vector_status == VectorStatus.PENDING
        assert entry.last_synced_at is None
        assert entry.vector_deleted_at == T1
        assert entry.vector_delete_reason == "Entry archived"
        assert entry.sync_history[-1].reason == "Entry archived"

    def test_history_events_are_frozen(self) -> None:
        entry = make_entry("a")
        entry.apply_sync_success(T1)

        with pytest.raises(pydantic.ValidationError):
            entry.sync_history[0].action = SyncAction.VECTOR_DELETED
        assert isinstance(entry.sync_history, tuple)

    def test_archive_and_restore(self) -> None:
        entry = make_entry("a", synced=True)

        entry.apply_archived({"archivedBy": "u1", "archivedAt": T1, "archivedReason": "outdated"})
        assert entry.is_archived()
        assert entry.archived_reason == "outdated"

        entry.apply_restored()
        assert not entry.is_archived()
        assert entry.archived_by is None
        assert entry.vector_status == VectorStatus.PENDING
        assert entry.last_synced_at is None


class TestEntryMetadata:
    def test_comma_separated_tags(self) -> None:
        metadata = EntryMetadata(category="listings", tags="photos, upload ,,")

        assert metadata.tags == ["photos", "upload"]

    def test_category_required_for_property_engine(self) -> None:
        assert EntryMetadata().get_missing_required_fields() == ["category"]
        assert EntryMetadata(product="other").get_missing_required_fields() == []

    def test_extras_are_kept(self) -> None:
        metadata = EntryMetadata.model_validate({"category": "x", "entryType": "error", "error_code": "E1"})

        assert metadata.model_dump()["error_code"] == "E1"


class TestVectorIds:
    @pytest.mark.parametrize("vector_id, parent", [
        ("abc123_chunk_2", "abc123"),
        ("abc123", "abc123"),
        ("abc_123_chunk_10", "abc_123"),
    ])
    def test_resolve_parent_id(self, vector_id: str, parent: str) -> None:
        assert resolve_parent_id(vector_id) == parent

    def test_chunk_position(self) -> None:
        assert chunk_position("abc123_chunk_2") == 2
        assert chunk_position("abc123") is None

    def test_is_chunk(self) -> None:
        assert VectorChunk(parent_entry_id="a", chunk_id="a_chunk_0").is_chunk()
        assert not VectorChunk(parent_entry_id="a", chunk_id="a").is_chunk()


class TestDuplicateCandidate:
    @pytest.mark.parametrize("score, label", [(0.94, "Very Similar"), (0.9, "Very Similar"), (0.77, "Similar"), (0.62, "Somewhat Similar")])
    def test_similarity_label(self, score: float, label: str) -> None:
        candidate = DuplicateCandidate(id="d", title="t", type="definition", similarity_score=score)

        assert candidate.get_similarity_label() == label

    def test_score_must_be_a_fraction(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            DuplicateCandidate(id="d", title="t", type="definition", similarity_score=1.5)


class TestBulkResult:
    def test_counts_and_summary(self) -> None:
        result = BulkResult(operation="Archived", results={
            "a": ItemResult(target_id="a", success=True),
            "b": ItemResult(target_id="b", success=False, error="HTTP 500"),
            "c": ItemResult(target_id="c", success=True),
        })

        assert (result.succeeded, result.failed) == (2, 1)
        assert result.get_failed_ids() == ["b"]
        assert result.get_errors() == {"b": "HTTP 500"}
        assert result.summary() == "Archived 2 of 3 entries, 1 failed"

    def test_summary_with_cascade(self) -> None:
        cascade = BulkResult(operation="Removed vectors for", results={"a": ItemResult(target_id="a", success=False, error="x")})
        result = BulkResult(operation="Archived", results={"a": ItemResult(target_id="a", success=True)}, cascade=cascade)

        assert result.summary() == "Archived 1 of 1 entry; vectors removed for 0 of 1, 1 still in the vector index"

    def test_empty_summary(self) -> None:
        assert BulkResult(operation="Archived").summary().startswith("Nothing to do")
