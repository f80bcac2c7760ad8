"""Bulk operations with settle-all semantics.

Every selected target runs independently: one failure never cancels or
affects its siblings. Results are keyed by target id, targets are
de-duplicated after resolving chunk ids to their parent entry, and local
session state is only changed for targets whose own operation succeeded.
"""

import asyncio
from typing import Any, Awaitable, Callable, Iterable

from services.kb_sync.AuditTrailRecorder import Actor, AuditTrailRecorder
from services.kb_sync.EntrySession import EntrySession
from services.kb_sync.SyncOrchestrator import CASCADE_REASON, SyncOrchestrator
from shared.clients.kb.entries.EntryStoreClient import EntryStoreClient
from shared.clients.kb.models.VectorChunk import resolve_parent_id
from shared.clients.kb.vectors.VectorIndexClient import VectorIndexClient
from shared.exceptions import KBAdminError, NotFoundError, SyncFailedError
from shared.helper.HelperConfig import HelperConfig
from shared.models.results import BulkResult, ItemResult

DEFAULT_BULK_CONCURRENCY = 5  # max parallel requests per bulk operation


class BulkOperationCoordinator:
    def __init__(
        self,
        helper_config: HelperConfig,
        session: EntrySession,
        entry_store: EntryStoreClient,
        vector_client: VectorIndexClient,
        orchestrator: SyncOrchestrator,
        audit_recorder: AuditTrailRecorder | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._session = session
        self._entry_store = entry_store
        self._vector_client = vector_client
        self._orchestrator = orchestrator
        self._audit_recorder = audit_recorder or AuditTrailRecorder()
        self._concurrency = max(1, int(helper_config.get_number_val("KB_BULK_CONCURRENCY", default=DEFAULT_BULK_CONCURRENCY)))

    ##########################################
    ############### CORE BULK ################
    ##########################################

    def resolve_targets(self, ids: Iterable[str], resolve: Callable[[str], str] | None = None) -> list[str]:
        """
        De-duplicates the selection, keeping first-seen order.

        Args:
            ids (Iterable[str]): Selected ids, possibly containing chunk ids.
            resolve (Callable[[str], str] | None): Maps a selected id to its target id.

        Returns:
            list[str]: Unique target ids.
        """
        resolve = resolve or (lambda target: target)
        return list(dict.fromkeys(resolve(i) for i in ids if i))

    async def do_run_bulk(
        self,
        ids: Iterable[str],
        operation: Callable[[str], Awaitable[Any]],
        label: str,
        resolve: Callable[[str], str] | None = None,
        on_success: Callable[[str, Any], None] | None = None,
    ) -> BulkResult:
        """
        Runs one operation per unique target concurrently and collects every outcome.

        Args:
            ids (Iterable[str]): Selected ids.
            operation (Callable[[str], Awaitable[Any]]): The per-target remote call.
            label (str): Past-tense verb for the summary, e.g. "Archived".
            resolve (Callable[[str], str] | None): Maps a selected id to its target id.
            on_success (Callable[[str, Any], None] | None): Local state change, applied per succeeded target.

        Returns:
            BulkResult: Per-target results; never raises for a single target's failure.
        """
        targets = self.resolve_targets(ids, resolve)
        result = BulkResult(operation=label)
        if not targets:
            return result

        self.logging.info("%s: running bulk operation on %d target(s)...", label, len(targets))
        sem = asyncio.Semaphore(self._concurrency)
        outcomes = await asyncio.gather(
            *[self._run_item(target, operation, sem) for target in targets],
            return_exceptions=True,
        )

        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, KBAdminError):
                    self.logging.error("%s: unexpected error for id=%s: %r", label, target, outcome)
                result.results[target] = ItemResult(target_id=target, success=False, error=str(outcome) or outcome.__class__.__name__)
                continue
            result.results[target] = ItemResult(target_id=target, success=True, value=outcome)
            if on_success is not None:
                on_success(target, outcome)

        self.logging.info("%s", result.summary(), color="green" if not result.failed else "yellow")
        return result

    async def _run_item(self, target: str, operation: Callable[[str], Awaitable[Any]], sem: asyncio.Semaphore) -> Any:
        async with sem:
            async with self._session.submitting(target):
                return await operation(target)

    ##########################################
    ############ BULK OPERATIONS #############
    ##########################################

    async def do_bulk_archive(
        self,
        ids: Iterable[str],
        actor: Actor | None = None,
        reason: str | None = None,
        cascade: bool = False,
    ) -> BulkResult:
        """
        Archives the selected entries, optionally removing their vectors afterwards.

        Only entries whose archive succeeded leave the active list. When
        ``cascade`` is set, vectors are removed for every archived entry that
        was synced; that deletion is reported in ``BulkResult.cascade``.

        Args:
            ids (Iterable[str]): Selected entry or chunk ids.
            actor (Actor | None): Who archives the entries.
            reason (str | None): Archive reason, also used as the vector delete reason.
            cascade (bool): Whether to delete vectors of archived, synced entries.

        Returns:
            BulkResult: Archive results, with the cascade results attached.
        """
        ids = list(ids)
        audit = self._audit_recorder.stamp_archive(actor, reason)
        synced_before = set()
        for target in self.resolve_targets(ids, resolve_parent_id):
            entry = self._session.get_entry(target)
            if entry is not None and entry.is_synced():
                synced_before.add(target)

        async def archive(target: str) -> None:
            await self._entry_store.do_archive(target, audit)

        result = await self.do_run_bulk(
            ids,
            archive,
            label="Archived",
            resolve=resolve_parent_id,
            on_success=lambda target, _: self._session.apply_archived(target, audit),
        )

        if cascade:
            cascade_targets = [t for t in result.get_succeeded_ids() if t in synced_before]
            result.cascade = await self._do_delete_entry_vectors(cascade_targets, reason or CASCADE_REASON)
        return result

    async def do_bulk_permanent_delete(self, ids: Iterable[str]) -> BulkResult:
        """Permanently deletes the selected archived entries. Vectors are not touched."""
        return await self.do_run_bulk(
            ids,
            self._entry_store.do_permanently_delete,
            label="Permanently deleted",
            resolve=resolve_parent_id,
            on_success=lambda target, _: self._session.apply_deleted(target),
        )

    async def do_bulk_sync(self, ids: Iterable[str]) -> BulkResult:
        """Syncs the selected entries. Failures are recorded on each entry and reported per id."""

        async def sync(target: str) -> int:
            entry = self._session.get_entry(target)
            if entry is None:
                raise NotFoundError(f"Entry '{target}' is not loaded in this session", status_code=404)
            outcome = await self._orchestrator.do_sync(entry)
            if not outcome.success:
                raise SyncFailedError(outcome.error or "sync failed")
            return outcome.chunks_created

        return await self.do_run_bulk(ids, sync, label="Synced", resolve=resolve_parent_id)

    async def do_bulk_delete_vectors(self, ids: Iterable[str], reason: str = "Manually deleted") -> BulkResult:
        """
        Deletes vectors for the selected parent or chunk ids.

        Selecting several chunks of one entry deletes that entry's chunk set once.
        """
        return await self._do_delete_entry_vectors(self.resolve_targets(ids, resolve_parent_id), reason)

    async def _do_delete_entry_vectors(self, targets: list[str], reason: str) -> BulkResult:
        async def delete_vectors(target: str) -> int:
            entry = self._session.get_entry(target)
            if entry is None:
                return await self._vector_client.do_delete(target)
            return await self._orchestrator.do_cascade_delete_vectors(entry, reason)

        return await self.do_run_bulk(targets, delete_vectors, label="Removed vectors for")
