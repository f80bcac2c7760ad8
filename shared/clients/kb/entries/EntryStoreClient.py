"""Write access to the entry store through the KB backend.

Title, canonical content and derived metadata are computed here from the
entry's form data, so every create and update carries a consistent set of
``(title, content, rawFormData, metadata)``.
"""

from typing import Any

import pydantic

from shared.clients.entrystore.EntryReaderInterface import EntryReaderInterface
from shared.clients.kb.KBClientInterface import KBClientInterface
from shared.clients.kb.models.DocumentUpload import DocumentStatus, DocumentUpload, DocumentUploadResult
from shared.content.CanonicalContentBuilder import CanonicalContentBuilder
from shared.exceptions import BackendError, NotFoundError, PreconditionFailedError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import KBApiConfig
from shared.models.entry import EntryDraft, EntryMetadata
from shared.models.form_data import EntryType, dump_form_data, parse_form_data


class EntryStoreClient(KBClientInterface):
    def __init__(
        self,
        helper_config: HelperConfig,
        entry_reader: EntryReaderInterface,
        api_config: KBApiConfig | None = None,
        content_builder: CanonicalContentBuilder | None = None,
    ):
        super().__init__(helper_config=helper_config, api_config=api_config)
        self._entry_reader = entry_reader
        self._content_builder = content_builder or CanonicalContentBuilder()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_metadata(self, metadata: EntryMetadata) -> None:
        """
        Rejects incomplete metadata locally.

        Args:
            metadata (EntryMetadata): The metadata to check.

        Raises:
            ValidationError: If a required field is missing (category for property_engine).
        """
        missing = metadata.get_missing_required_fields()
        if missing:
            raise ValidationError(f"Missing required metadata: {', '.join(missing)}")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ ENDPOINTS ##################
    def _get_endpoint_entries(self) -> str:
        return "/api/kb/entries"

    def _get_endpoint_entry(self, entry_id: str) -> str:
        return f"/api/kb/entries/{entry_id}"

    def _get_endpoint_archive(self, entry_id: str) -> str:
        return f"/api/kb/entries/{entry_id}/archive"

    def _get_endpoint_restore(self, entry_id: str) -> str:
        return f"/api/kb/entries/{entry_id}/restore"

    def _get_endpoint_document_upload(self) -> str:
        return "/api/kb/documents/upload"

    def _get_endpoint_document_status(self, entry_id: str) -> str:
        return f"/api/kb/documents/status/{entry_id}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_content_payload(self, entry_type: EntryType, raw_form_data: dict[str, Any], metadata: EntryMetadata) -> dict:
        """
        Derives the content-bearing fields shared by create and update.

        Args:
            entry_type (EntryType): The entry type.
            raw_form_data (dict[str, Any]): The structured form payload.
            metadata (EntryMetadata): The organisational metadata.

        Returns:
            dict: title, content, rawFormData and metadata in wire format.

        Raises:
            ValidationError: If the metadata is incomplete or the form data does not match the type.
        """
        self.validate_metadata(metadata)
        try:
            form = parse_form_data(entry_type, raw_form_data)
        except (pydantic.ValidationError, ValueError) as exc:
            raise ValidationError(f"Form data does not match entry type '{EntryType(entry_type).value}': {exc}") from exc

        wire_metadata = metadata.model_dump(mode="json", exclude_none=True)
        wire_metadata.update(self._content_builder.build_metadata_extras(entry_type, form))
        return {
            "title": self._content_builder.extract_title(entry_type, form),
            "content": self._content_builder.build(entry_type, form),
            "rawFormData": dump_form_data(form),
            "metadata": wire_metadata,
        }

    def get_create_payload(self, draft: EntryDraft, audit: dict[str, Any]) -> dict:
        payload = {"type": draft.type.value}
        payload.update(self.get_content_payload(draft.type, draft.raw_form_data, draft.metadata))
        payload.update(audit)
        return payload

    def get_update_payload(self, entry_type: EntryType, raw_form_data: dict[str, Any], metadata: EntryMetadata, audit: dict[str, Any]) -> dict:
        payload = self.get_content_payload(entry_type, raw_form_data, metadata)
        # top-level copies kept for older readers of the store
        payload["userType"] = metadata.userType
        payload["category"] = metadata.category
        payload["tags"] = list(metadata.tags)
        payload.update(audit)
        return payload

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_create(self, draft: EntryDraft, audit: dict[str, Any]) -> str:
        """
        Creates a new entry.

        Args:
            draft (EntryDraft): The entry type, form data and metadata.
            audit (dict[str, Any]): Creation audit stamp.

        Returns:
            str: The ID assigned by the entry store.

        Raises:
            ValidationError: Before any request, if metadata or form data is invalid.
            BackendError | NetworkError: If the backend rejects or cannot be reached.
        """
        payload = self.get_create_payload(draft, audit)
        body = await self.do_kb_request(method="POST", endpoint=self._get_endpoint_entries(), json=payload)
        entry_id = body.get("entry_id")
        if not entry_id:
            raise BackendError("Backend reported success but returned no entry_id")
        self.logging.info("Created %s entry '%s' with id=%s", draft.type.value, payload["title"], entry_id)
        return str(entry_id)

    async def do_update(self, entry_id: str, updates: dict[str, Any]) -> None:
        """
        Applies a partial update. The backend merges at field level.

        Args:
            entry_id (str): The ID of the entry.
            updates (dict[str, Any]): Fields to overwrite.

        Raises:
            NotFoundError: If the entry does not exist.
            BackendError | NetworkError: If the backend rejects or cannot be reached.
        """
        await self.do_kb_request(method="PUT", endpoint=self._get_endpoint_entry(entry_id), json=updates)
        self.logging.debug("Updated entry id=%s fields=%s", entry_id, sorted(updates))

    async def do_archive(self, entry_id: str, audit: dict[str, Any]) -> None:
        """
        Archives (soft-deletes) an entry.

        Args:
            entry_id (str): The ID of the entry.
            audit (dict[str, Any]): Archive audit stamp (archivedBy..., archivedAt, archivedReason).
        """
        await self.do_kb_request(method="POST", endpoint=self._get_endpoint_archive(entry_id), json=audit)
        self.logging.info("Archived entry id=%s", entry_id)

    async def do_restore(self, entry_id: str) -> None:
        """Restores an archived entry to active."""
        await self.do_kb_request(method="POST", endpoint=self._get_endpoint_restore(entry_id))
        self.logging.info("Restored entry id=%s", entry_id)

    async def do_permanently_delete(self, entry_id: str) -> None:
        """
        Irreversibly removes an archived entry from the entry store.

        The entry's current state is read first: only archived entries may be
        deleted. Vector removal is not implied.

        Args:
            entry_id (str): The ID of the entry.

        Raises:
            NotFoundError: If the entry does not exist.
            PreconditionFailedError: If the entry is not archived.
            BackendError | NetworkError: If the backend rejects or cannot be reached.
        """
        entry = await self._entry_reader.do_fetch_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry '{entry_id}' does not exist", status_code=404)
        if not entry.is_archived():
            raise PreconditionFailedError(f"Entry '{entry_id}' must be archived before it can be permanently deleted")
        await self.do_kb_request(method="DELETE", endpoint=self._get_endpoint_entry(entry_id))
        self.logging.info("Permanently deleted entry id=%s", entry_id)

    async def do_upload_document(self, upload: DocumentUpload, file_name: str, file_content: bytes, content_type: str = "application/octet-stream") -> DocumentUploadResult:
        """
        Uploads a document for the backend to turn into an entry.

        Args:
            upload (DocumentUpload): Title, type, metadata and auto-sync flag.
            file_name (str): Original file name.
            file_content (bytes): Raw file bytes.
            content_type (str): MIME type of the file.

        Returns:
            DocumentUploadResult: The created entry ID and processing details.

        Raises:
            ValidationError: Before any request, if metadata is incomplete.
        """
        self.validate_metadata(upload.metadata)
        body = await self.do_kb_request(
            method="POST",
            endpoint=self._get_endpoint_document_upload(),
            data=upload.to_form_fields(),
            files={"file": (file_name, file_content, content_type)},
        )
        try:
            result = DocumentUploadResult.model_validate(body)
        except pydantic.ValidationError as exc:
            raise BackendError(f"Malformed upload response: {exc}") from exc
        self.logging.info("Uploaded '%s' as entry id=%s", file_name, result.entry_id)
        return result

    async def do_fetch_document_status(self, entry_id: str) -> DocumentStatus:
        """Fetches processing and vector status of an uploaded document."""
        body = await self.do_kb_request(method="GET", endpoint=self._get_endpoint_document_status(entry_id))
        try:
            return DocumentStatus.model_validate(body)
        except pydantic.ValidationError as exc:
            raise BackendError(f"Malformed document status response: {exc}") from exc
