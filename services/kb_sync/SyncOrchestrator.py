"""Vector sync state machine.

pending --sync ok--> synced, pending --sync fail--> failed,
synced|failed --content edit--> pending (resync or stale),
synced|failed --archive with cascade--> vectors deleted,
archived --restore--> pending.

Failures are never retried automatically; ``do_retry`` is the manual action.
"""

from datetime import datetime
from typing import Callable

from services.kb_sync.AuditTrailRecorder import utc_now
from shared.clients.kb.entries.EntryStoreClient import EntryStoreClient
from shared.clients.kb.vectors.VectorIndexClient import VectorIndexClient
from shared.exceptions import BackendError, NetworkError, PreconditionFailedError
from shared.helper.HelperConfig import HelperConfig
from shared.models.entry import Entry, VectorStatus
from shared.models.results import SyncOutcome

CASCADE_REASON = "Entry archived"


class SyncOrchestrator:
    def __init__(
        self,
        helper_config: HelperConfig,
        vector_client: VectorIndexClient,
        entry_store: EntryStoreClient,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._vector_client = vector_client
        self._entry_store = entry_store
        self._clock = clock or utc_now

    ##########################################
    ################ SYNC ####################
    ##########################################

    async def do_sync(self, entry: Entry) -> SyncOutcome:
        """
        Regenerates the vector chunks of an entry and records the outcome on it.

        A failure is not raised: it is stored on the entry (``syncError`` and a
        ``vector_sync_failed`` history event), written back to the entry store
        on a best-effort basis and returned as an unsuccessful outcome.

        Args:
            entry (Entry): The entry to sync. Mutated in place.

        Returns:
            SyncOutcome: The sync result with a human-readable message.

        Raises:
            PreconditionFailedError: If the entry is archived.
        """
        if entry.is_archived():
            raise PreconditionFailedError(f"Entry '{entry.id}' is archived and cannot be synced")

        try:
            chunks_created = await self._vector_client.do_sync(entry.id)
        except (BackendError, NetworkError) as exc:
            error = str(exc) or exc.__class__.__name__
            entry.apply_sync_failure(error, self._clock())
            self.logging.warning("Vector sync failed for entry id=%s: %s", entry.id, error, color="yellow")
            await self._persist_failure(entry)
            return SyncOutcome(
                entry_id=entry.id,
                success=False,
                error=error,
                message=f"Sync failed for '{entry.title}': {error}. Its vectors are stale until a retry succeeds.",
            )

        entry.apply_sync_success(self._clock())
        return SyncOutcome(
            entry_id=entry.id,
            success=True,
            chunks_created=chunks_created,
            message=f"Synced '{entry.title}' to the vector index ({chunks_created} chunk(s)).",
        )

    async def do_retry(self, entry: Entry) -> SyncOutcome:
        self.logging.info("Manual retry of vector sync for entry id=%s", entry.id)
        return await self.do_sync(entry)

    async def _persist_failure(self, entry: Entry) -> None:
        try:
            await self._entry_store.do_update(
                entry.id,
                {"vectorStatus": VectorStatus.FAILED.value, "syncError": entry.sync_error},
            )
        except (BackendError, NetworkError) as exc:
            self.logging.warning("Could not record sync failure for entry id=%s in the entry store: %s", entry.id, exc)

    ##########################################
    ############## INVALIDATION ##############
    ##########################################

    def do_mark_stale(self, entry: Entry) -> str:
        """Content changed without a resync. Returns the message to show."""
        entry.apply_stale()
        self.logging.info("Entry id=%s marked stale, vectors pending resync", entry.id)
        return f"'{entry.title}' was updated; its vectors are stale until it is synced again."

    async def do_cascade_delete_vectors(self, entry: Entry, reason: str) -> int:
        """
        Removes every vector chunk of an entry and records why.

        Args:
            entry (Entry): The entry whose vectors are removed. Mutated only on success.
            reason (str): Stored as vectorDeleteReason and on the history event.

        Returns:
            int: Number of chunks deleted.

        Raises:
            BackendError | NetworkError: If the vector index did not confirm the deletion.
        """
        chunks_deleted = await self._vector_client.do_delete(entry.id)
        entry.apply_vectors_deleted(reason, self._clock())
        return chunks_deleted
