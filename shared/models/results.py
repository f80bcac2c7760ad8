"""Outcome models returned by the lifecycle, sync and bulk services.

Every outcome carries a human-readable ``message`` so callers can tell
"nothing happened" apart from "some items failed" and from "this entry's
vectors are stale".
"""

from typing import Any

from pydantic import BaseModel

from shared.clients.kb.models.DuplicateCandidate import DuplicateCandidate


class SyncOutcome(BaseModel):
    """
    Result of one vector sync attempt.

    Attributes:
        entry_id (str): The synced entry.
        success (bool): Whether the vector index accepted the sync.
        chunks_created (int): Number of chunks written on success.
        error (str | None): The captured error on failure.
        message (str): Human-readable summary.
    """

    entry_id: str
    success: bool
    chunks_created: int = 0
    error: str | None = None
    message: str = ""


class ItemResult(BaseModel):
    """Outcome of a bulk operation for one target id."""

    target_id: str
    success: bool
    value: Any = None
    error: str | None = None


class BulkResult(BaseModel):
    """
    Per-target outcome of a bulk operation.

    Results are keyed by target id, never by position, so de-duplicated
    targets cannot be mis-attributed.

    Attributes:
        operation (str): Past-tense label used in the summary, e.g. "Archived".
        results (dict[str, ItemResult]): One result per de-duplicated target.
        cascade (BulkResult | None): Separate result of a cascaded vector deletion.
    """

    operation: str
    results: dict[str, ItemResult] = {}
    cascade: "BulkResult | None" = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results.values() if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results.values() if not r.success)

    def get_succeeded_ids(self) -> list[str]:
        return [target for target, r in self.results.items() if r.success]

    def get_failed_ids(self) -> list[str]:
        return [target for target, r in self.results.items() if not r.success]

    def get_errors(self) -> dict[str, str]:
        return {target: r.error or "unknown error" for target, r in self.results.items() if not r.success}

    def summary(self) -> str:
        total = len(self.results)
        if total == 0:
            return f"Nothing to do: no entries selected for '{self.operation.lower()}'"
        noun = "entry" if total == 1 else "entries"
        text = f"{self.operation} {self.succeeded} of {total} {noun}"
        if self.failed:
            text += f", {self.failed} failed"
        if self.cascade is not None and self.cascade.results:
            text += f"; vectors removed for {self.cascade.succeeded} of {len(self.cascade.results)}"
            if self.cascade.failed:
                text += f", {self.cascade.failed} still in the vector index"
        return text


BulkResult.model_rebuild()


class CreateOutcome(BaseModel):
    """
    Result of the create flow.

    When duplicates were found and not explicitly allowed, nothing is created:
    ``entry_id`` is None and ``duplicates`` lists the candidates.
    """

    entry_id: str | None = None
    title: str = ""
    duplicates: list[DuplicateCandidate] = []
    sync: SyncOutcome | None = None
    message: str = ""

    def is_created(self) -> bool:
        return self.entry_id is not None


class LifecycleOutcome(BaseModel):
    """
    Result of an edit, archive, restore or delete on a single entry.

    Attributes:
        entry_id (str): The affected entry.
        message (str): Human-readable summary.
        sync (SyncOutcome | None): The sync that followed, if one was requested.
        chunks_deleted (int | None): Chunks removed by a cascade, if one was requested and succeeded.
        warning (str | None): A follow-up step that failed after the main operation succeeded.
    """

    entry_id: str
    message: str = ""
    sync: SyncOutcome | None = None
    chunks_deleted: int | None = None
    warning: str | None = None
