"""Single-entry flows: create, edit, archive, restore, permanent delete, sync and upload.

Each flow validates locally, performs the remote mutation, and only then
changes the session's entries. A mutation is guarded per entry so no two
remote calls for the same entry are in flight at once.
"""

from typing import Any

from services.kb_sync.AuditTrailRecorder import Actor, AuditTrailRecorder
from services.kb_sync.EntrySession import EntrySession
from services.kb_sync.SyncOrchestrator import CASCADE_REASON, SyncOrchestrator
from shared.clients.entrystore.EntryReaderInterface import EntryReaderInterface
from shared.clients.kb.duplicates.DuplicateDetector import DuplicateDetector
from shared.clients.kb.entries.EntryStoreClient import EntryStoreClient
from shared.clients.kb.models.DocumentUpload import DocumentUpload, DocumentUploadResult
from shared.clients.kb.models.DuplicateCandidate import DuplicateCandidate
from shared.exceptions import BackendError, NetworkError, NotFoundError, PreconditionFailedError
from shared.helper.HelperConfig import HelperConfig
from shared.models.entry import Entry, EntryDraft, EntryMetadata, VectorStatus
from shared.models.results import CreateOutcome, LifecycleOutcome


class EntryLifecycleService:
    def __init__(
        self,
        helper_config: HelperConfig,
        session: EntrySession,
        entry_store: EntryStoreClient,
        entry_reader: EntryReaderInterface,
        duplicate_detector: DuplicateDetector,
        orchestrator: SyncOrchestrator,
        audit_recorder: AuditTrailRecorder | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._session = session
        self._entry_store = entry_store
        self._entry_reader = entry_reader
        self._duplicate_detector = duplicate_detector
        self._orchestrator = orchestrator
        self._audit_recorder = audit_recorder or AuditTrailRecorder()

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_active_entry(self, entry_id: str) -> Entry:
        entry = self._session.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry '{entry_id}' is not loaded in this session", status_code=404)
        if entry.is_archived():
            raise PreconditionFailedError(f"Entry '{entry_id}' is archived")
        return entry

    def _get_archived_entry(self, entry_id: str) -> Entry:
        entry = self._session.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry '{entry_id}' is not loaded in this session", status_code=404)
        if not entry.is_archived():
            raise PreconditionFailedError(f"Entry '{entry_id}' is not archived")
        return entry

    def _describe_duplicates(self, duplicates: list[DuplicateCandidate]) -> str:
        best = duplicates[0]
        noun = "entry" if len(duplicates) == 1 else "entries"
        return (
            f"Nothing was created: {len(duplicates)} similar {noun} found, closest is "
            f"'{best.title}' ({best.get_similarity_percent()}%, {best.get_similarity_label()}). "
            "Confirm to create anyway."
        )

    ##########################################
    ################ CREATE ##################
    ##########################################

    async def do_create(
        self,
        draft: EntryDraft,
        actor: Actor | None = None,
        sync_now: bool = True,
        allow_duplicates: bool = False,
    ) -> CreateOutcome:
        """
        Creates an entry: validate, check for duplicates, create, then optionally sync.

        Args:
            draft (EntryDraft): Type, form data and metadata of the new entry.
            actor (Actor | None): Who creates the entry.
            sync_now (bool): Sync to the vector index right after creation.
            allow_duplicates (bool): Create even if similar entries exist.

        Returns:
            CreateOutcome: The new entry ID, or the duplicates that stopped the create.

        Raises:
            ValidationError: If metadata or form data is invalid. Nothing is sent.
            BackendError | NetworkError: If the entry store rejects the create.
        """
        content_payload = self._entry_store.get_content_payload(draft.type, draft.raw_form_data, draft.metadata)
        title = content_payload["title"]

        if not allow_duplicates:
            duplicates = await self._duplicate_detector.do_check(title, content_payload["content"], draft.type)
            if duplicates:
                return CreateOutcome(title=title, duplicates=duplicates, message=self._describe_duplicates(duplicates))

        audit = self._audit_recorder.stamp_create(actor)
        entry_id = await self._entry_store.do_create(draft, audit)

        entry = Entry(
            id=entry_id,
            type=draft.type,
            title=title,
            content=content_payload["content"],
            raw_form_data=content_payload["rawFormData"],
            metadata=EntryMetadata.model_validate(content_payload["metadata"]),
            created_at=audit["createdAt"],
            updated_at=audit["updatedAt"],
            created_by=audit["createdBy"],
            created_by_email=audit["createdByEmail"],
            created_by_name=audit["createdByName"],
        )
        self._session.apply_created(entry)

        if not sync_now:
            return CreateOutcome(
                entry_id=entry_id,
                title=title,
                message=f"Created '{title}'. It is not searchable until it is synced.",
            )

        async with self._session.submitting(entry_id):
            sync = await self._orchestrator.do_sync(entry)
        message = f"Created '{title}'. " + sync.message
        return CreateOutcome(entry_id=entry_id, title=title, sync=sync, message=message)

    ##########################################
    ################# EDIT ###################
    ##########################################

    async def do_edit(
        self,
        entry_id: str,
        raw_form_data: dict[str, Any],
        metadata: EntryMetadata | None = None,
        actor: Actor | None = None,
        resync: bool = False,
    ) -> LifecycleOutcome:
        """
        Updates an entry's form data and metadata, re-deriving title and content.

        When the content changes and no resync is requested, the entry is
        marked stale (pending) without touching its sync history.

        Args:
            entry_id (str): The entry to edit.
            raw_form_data (dict[str, Any]): The new form payload.
            metadata (EntryMetadata | None): New metadata, or None to keep the current one.
            actor (Actor | None): Who edits the entry.
            resync (bool): Sync to the vector index after saving.

        Returns:
            LifecycleOutcome: What happened, including the sync outcome if one ran.
        """
        entry = self._get_active_entry(entry_id)
        metadata = metadata or entry.metadata

        async with self._session.submitting(entry_id):
            audit = self._audit_recorder.stamp_edit(actor)
            payload = self._entry_store.get_update_payload(entry.type, raw_form_data, metadata, audit)
            content_changed = payload["content"] != entry.content
            if content_changed and not resync:
                payload["vectorStatus"] = VectorStatus.PENDING.value

            await self._entry_store.do_update(entry_id, payload)

            entry.title = payload["title"]
            entry.content = payload["content"]
            entry.raw_form_data = payload["rawFormData"]
            entry.metadata = EntryMetadata.model_validate(payload["metadata"])
            entry.last_modified_by = audit["lastModifiedBy"]
            entry.last_modified_by_email = audit["lastModifiedByEmail"]
            entry.last_modified_by_name = audit["lastModifiedByName"]
            entry.last_modified_at = audit["lastModifiedAt"]
            entry.updated_at = audit["updatedAt"]

            if resync:
                sync = await self._orchestrator.do_sync(entry)
                return LifecycleOutcome(entry_id=entry_id, sync=sync, message=f"Updated '{entry.title}'. " + sync.message)

        if content_changed:
            return LifecycleOutcome(entry_id=entry_id, message=self._orchestrator.do_mark_stale(entry))
        return LifecycleOutcome(entry_id=entry_id, message=f"Updated '{entry.title}'. Content unchanged, vectors still current.")

    ##########################################
    ############### ARCHIVE ##################
    ##########################################

    async def do_archive(
        self,
        entry_id: str,
        actor: Actor | None = None,
        reason: str | None = None,
        cascade: bool = False,
    ) -> LifecycleOutcome:
        """
        Archives an entry, optionally removing its vectors.

        The cascade only runs for synced entries and only after the archive
        succeeded. A failed cascade leaves the entry archived and is reported
        as a warning.

        Args:
            entry_id (str): The entry to archive.
            actor (Actor | None): Who archives the entry.
            reason (str | None): Archive reason, also used as the vector delete reason.
            cascade (bool): Remove the entry's vectors from the index.

        Returns:
            LifecycleOutcome: What happened, including the deleted chunk count.
        """
        entry = self._get_active_entry(entry_id)
        was_synced = entry.is_synced()

        async with self._session.submitting(entry_id):
            audit = self._audit_recorder.stamp_archive(actor, reason)
            await self._entry_store.do_archive(entry_id, audit)
            self._session.apply_archived(entry_id, audit)

            if not (cascade and was_synced):
                return LifecycleOutcome(entry_id=entry_id, message=f"Archived '{entry.title}'.")

            try:
                chunks_deleted = await self._orchestrator.do_cascade_delete_vectors(entry, reason or CASCADE_REASON)
            except (BackendError, NetworkError) as exc:
                self.logging.warning("Archived entry id=%s but its vectors could not be removed: %s", entry_id, exc, color="yellow")
                return LifecycleOutcome(
                    entry_id=entry_id,
                    message=f"Archived '{entry.title}', but its vectors are still in the index.",
                    warning=str(exc),
                )

        return LifecycleOutcome(
            entry_id=entry_id,
            chunks_deleted=chunks_deleted,
            message=f"Archived '{entry.title}' and removed {chunks_deleted} vector chunk(s).",
        )

    async def do_restore(self, entry_id: str, sync_after_restore: bool = False) -> LifecycleOutcome:
        """
        Restores an archived entry. The entry always comes back as pending.

        Args:
            entry_id (str): The entry to restore.
            sync_after_restore (bool): Sync right after the restore.

        Returns:
            LifecycleOutcome: What happened, including the sync outcome if one ran.
        """
        entry = self._get_archived_entry(entry_id)

        async with self._session.submitting(entry_id):
            await self._entry_store.do_restore(entry_id)
            self._session.apply_restored(entry_id)

            if sync_after_restore:
                sync = await self._orchestrator.do_sync(entry)
                return LifecycleOutcome(entry_id=entry_id, sync=sync, message=f"Restored '{entry.title}'. " + sync.message)

        return LifecycleOutcome(
            entry_id=entry_id,
            message=f"Restored '{entry.title}'. It must be synced again before it is searchable.",
        )

    async def do_permanently_delete(self, entry_id: str) -> LifecycleOutcome:
        """
        Permanently deletes an archived entry from the entry store. Vectors are left alone.

        Raises:
            NotFoundError: If the entry does not exist.
            PreconditionFailedError: If the entry is not archived.
        """
        async with self._session.submitting(entry_id):
            await self._entry_store.do_permanently_delete(entry_id)
            self._session.apply_deleted(entry_id)
        return LifecycleOutcome(
            entry_id=entry_id,
            message=f"Permanently deleted entry '{entry_id}'. Any remaining vectors must be removed separately.",
        )

    ##########################################
    ################# SYNC ###################
    ##########################################

    async def do_sync_entry(self, entry_id: str) -> LifecycleOutcome:
        entry = self._get_active_entry(entry_id)
        async with self._session.submitting(entry_id):
            sync = await self._orchestrator.do_sync(entry)
        return LifecycleOutcome(entry_id=entry_id, sync=sync, message=sync.message)

    async def do_retry_sync(self, entry_id: str) -> LifecycleOutcome:
        entry = self._get_active_entry(entry_id)
        async with self._session.submitting(entry_id):
            sync = await self._orchestrator.do_retry(entry)
        return LifecycleOutcome(entry_id=entry_id, sync=sync, message=sync.message)

    ##########################################
    ################ UPLOAD ##################
    ##########################################

    async def do_upload_document(
        self,
        upload: DocumentUpload,
        file_name: str,
        file_content: bytes,
        content_type: str = "application/octet-stream",
    ) -> DocumentUploadResult:
        """
        Uploads a document and adds the resulting entry to the session.

        Args:
            upload (DocumentUpload): Title, type, metadata and auto-sync flag.
            file_name (str): Original file name.
            file_content (bytes): Raw file bytes.
            content_type (str): MIME type of the file.

        Returns:
            DocumentUploadResult: The backend's upload result.
        """
        result = await self._entry_store.do_upload_document(upload, file_name, file_content, content_type)
        entry = await self._entry_reader.do_fetch_entry(result.entry_id)
        if entry is not None and not entry.is_archived():
            self._session.apply_created(entry)
        return result
