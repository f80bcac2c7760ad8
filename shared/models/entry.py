"""Knowledge-base entry model: store-independent."""

from datetime import datetime
from enum import Enum
from typing import Any

import pytz
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from shared.models.form_data import EntryType

PROPERTY_ENGINE_PRODUCT = "property_engine"


def as_utc(value: datetime | None) -> datetime | None:
    """Treats a timezone-less timestamp as UTC so stored timestamps always compare."""
    if value is None or value.tzinfo is not None:
        return value
    return pytz.utc.localize(value)


class EntryStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class VectorStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class SyncAction(str, Enum):
    VECTOR_SYNCED = "vector_synced"
    VECTOR_DELETED = "vector_deleted"
    VECTOR_SYNC_FAILED = "vector_sync_failed"


class SyncHistoryEvent(BaseModel):
    """
    One immutable record in an entry's sync history.

    Attributes:
        action (SyncAction): What happened to the entry's vectors.
        timestamp (datetime): When it happened.
        reason (str | None): Why vectors were deleted, if applicable.
        error (str | None): The captured error of a failed sync, if applicable.
    """
    model_config = ConfigDict(frozen=True)

    action: SyncAction
    timestamp: datetime
    reason: str | None = None
    error: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class EntryMetadata(BaseModel):
    """
    Organisational metadata of an entry.

    Extra keys written by the create flow (entryType, related_documents,
    error_code, process_type, step_count) are kept as model extras.
    """
    model_config = ConfigDict(extra="allow")

    userType: str = "internal"
    product: str = PROPERTY_ENGINE_PRODUCT
    category: str = ""
    subcategory: str | None = None
    tags: list[str] = []

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        # the add-entry form sends a comma separated string, the edit form a list
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return value

    def get_missing_required_fields(self) -> list[str]:
        """
        Returns the names of required metadata fields that are not set.

        Returns:
            list[str]: Missing field names, empty when the metadata is complete.
        """
        missing = []
        if not self.userType:
            missing.append("userType")
        if not self.product:
            missing.append("product")
        if self.product == PROPERTY_ENGINE_PRODUCT and not (self.category or "").strip():
            missing.append("category")
        return missing


class EntryDraft(BaseModel):
    """
    Caller input for a new entry. Title and content are derived, never supplied.

    Attributes:
        type (EntryType): The entry type; selects the form shape and content template.
        raw_form_data (dict[str, Any]): The structured, type-specific form payload.
        metadata (EntryMetadata): Organisational metadata.
    """

    type: EntryType
    raw_form_data: dict[str, Any] = {}
    metadata: EntryMetadata = EntryMetadata()


class Entry(BaseModel):
    """
    A single knowledge-base entry as held by the client session.

    Vector-state fields are changed only through the transition methods below
    so that the sync invariants and the append-only history always hold.
    """

    # Core identity
    id: str
    type: EntryType
    title: str
    content: str | dict[str, Any] = ""
    raw_form_data: dict[str, Any] = {}
    metadata: EntryMetadata = EntryMetadata()

    # Lifecycle
    status: EntryStatus = EntryStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Audit trail
    created_by: str | None = None
    created_by_email: str | None = None
    created_by_name: str | None = None
    last_modified_by: str | None = None
    last_modified_by_email: str | None = None
    last_modified_by_name: str | None = None
    last_modified_at: datetime | None = None
    archived_by: str | None = None
    archived_by_email: str | None = None
    archived_by_name: str | None = None
    archived_at: datetime | None = None
    archived_reason: str | None = None

    # Vector state
    vector_status: VectorStatus = VectorStatus.PENDING
    last_synced_at: datetime | None = None
    sync_error: str | None = None
    vector_deleted_at: datetime | None = None
    vector_delete_reason: str | None = None
    sync_history: tuple[SyncHistoryEvent, ...] = ()

    @field_validator(
        "created_at",
        "updated_at",
        "last_modified_at",
        "archived_at",
        "last_synced_at",
        "vector_deleted_at",
    )
    @classmethod
    def _timestamps_as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_sync_invariant(self) -> "Entry":
        if self.vector_status == VectorStatus.SYNCED:
            if self.last_synced_at is None:
                raise ValueError(f"Entry '{self.id}' is synced but has no lastSyncedAt.")
            if self.sync_error is not None:
                raise ValueError(f"Entry '{self.id}' is synced but still carries a syncError.")
        return self

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_archived(self) -> bool:
        return self.status == EntryStatus.ARCHIVED

    def is_synced(self) -> bool:
        return self.vector_status == VectorStatus.SYNCED

    ##########################################
    ############# TRANSITIONS ################
    ##########################################

    def _append_history(self, event: SyncHistoryEvent) -> None:
        self.sync_history = (*self.sync_history, event)

    def apply_sync_success(self, at: datetime) -> None:
        """pending|synced|failed → synced. Records a vector_synced event."""
        self.sync_error = None
        self.last_synced_at = at
        self.vector_status = VectorStatus.SYNCED
        self._append_history(SyncHistoryEvent(action=SyncAction.VECTOR_SYNCED, timestamp=at))

    def apply_sync_failure(self, error: str, at: datetime) -> None:
        """pending|synced|failed → failed. Records a vector_sync_failed event with the error."""
        self.vector_status = VectorStatus.FAILED
        self.sync_error = error
        self._append_history(SyncHistoryEvent(action=SyncAction.VECTOR_SYNC_FAILED, timestamp=at, error=error))

    def apply_stale(self) -> None:
        """Content changed without a resync: back to pending, history untouched."""
        self.vector_status = VectorStatus.PENDING

    def apply_vectors_deleted(self, reason: str, at: datetime) -> None:
        """Vectors were removed from the index: clear the vector state and record why."""
        self.vector_status = VectorStatus.PENDING
        self.last_synced_at = None
        self.sync_error = None
        self.vector_deleted_at = at
        self.vector_delete_reason = reason
        self._append_history(SyncHistoryEvent(action=SyncAction.VECTOR_DELETED, timestamp=at, reason=reason))

    def apply_archived(self, audit: dict[str, Any]) -> None:
        """active → archived, stamping the archive audit fields."""
        self.status = EntryStatus.ARCHIVED
        self.archived_by = audit.get("archivedBy")
        self.archived_by_email = audit.get("archivedByEmail")
        self.archived_by_name = audit.get("archivedByName")
        self.archived_at = audit.get("archivedAt")
        self.archived_reason = audit.get("archivedReason")

    def apply_restored(self) -> None:
        """archived → active. Vectors may be stale or gone, so a fresh sync is required."""
        self.status = EntryStatus.ACTIVE
        self.archived_by = None
        self.archived_by_email = None
        self.archived_by_name = None
        self.archived_at = None
        self.archived_reason = None
        self.vector_status = VectorStatus.PENDING
        self.last_synced_at = None
        self.sync_error = None
