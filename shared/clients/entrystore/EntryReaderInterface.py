import asyncio
from abc import abstractmethod
from datetime import datetime, timezone

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import NotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.entry import Entry


class EntryReaderInterface(ClientInterface):
    """
    Direct, read-only access to the entry store.

    Reads bypass the KB backend for latency but apply the same archive
    exclusion the backend applies: an entry is archived when its ``status``
    is "archived" or its legacy ``archived`` flag is true, and archived
    entries can never be returned by the active listings.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_archived_document(self, fields: dict) -> bool:
        """
        Checks both archive markers of a decoded store document.

        Args:
            fields (dict): The decoded document fields.

        Returns:
            bool: True if the document is archived.
        """
        return fields.get("status") == "archived" or fields.get("archived") is True

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "entrystore"
        """
        return "entrystore"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_run_query(self) -> str:
        """
        Returns the endpoint path for structured queries against the entry collection.

        Returns:
            str: The endpoint path (e.g. "/projects/p/databases/(default)/documents:runQuery")

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    @abstractmethod
    def _get_endpoint_document(self, entry_id: str) -> str:
        """
        Returns the endpoint path for a single entry document.

        Args:
            entry_id (str): The ID of the entry.

        Returns:
            str: The endpoint path (e.g. "/projects/p/databases/(default)/documents/kb_entries/{id}")

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    @abstractmethod
    def get_query_payload(self, filters: list[dict], order_by: str | None = None, descending: bool = True) -> dict:
        """
        Builds the backend-specific payload for a collection query.

        Args:
            filters (list[dict]): Equality filters as {"field": <dotted path>, "value": <value>}, combined with AND.
            order_by (str | None): Field to order by.
            descending (bool): Sort direction for order_by.

        Returns:
            dict: The payload for the query request.

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_query_documents(self, raw_response: list | dict) -> list[dict]:
        """
        Extracts the raw documents from a query response.

        Args:
            raw_response (list | dict): The raw JSON response of the query endpoint.

        Returns:
            list[dict]: The raw store documents.

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    @abstractmethod
    def decode_document_fields(self, raw_document: dict) -> dict:
        """
        Decodes a raw store document into plain Python field values.

        Args:
            raw_document (dict): The raw document as returned by the store.

        Returns:
            dict: The decoded fields, including "id".

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    def _parse_entry_fields(self, fields: dict) -> Entry:
        """
        Maps decoded store fields (camelCase) onto the Entry model.

        Stored rows that claim "synced" without a sync timestamp fall back to
        the row's update time, and a stale syncError on a synced row is
        dropped, so legacy rows still satisfy the sync invariant.

        Args:
            fields (dict): The decoded document fields, including "id".

        Returns:
            Entry: The parsed entry.
        """
        vector_status = fields.get("vectorStatus") or "pending"
        last_synced_at = fields.get("lastSyncedAt")
        sync_error = fields.get("syncError")
        if vector_status == "synced":
            if last_synced_at is None:
                last_synced_at = fields.get("updatedAt") or fields.get("_updateTime") or datetime.now(timezone.utc)
            sync_error = None

        return Entry(
            id=fields["id"],
            type=fields.get("type"),
            title=fields.get("title") or "",
            content=fields.get("content") or "",
            raw_form_data=fields.get("rawFormData") or {},
            metadata=fields.get("metadata") or {},
            status="archived" if self.is_archived_document(fields) else "active",
            created_at=fields.get("createdAt"),
            updated_at=fields.get("updatedAt"),
            created_by=fields.get("createdBy"),
            created_by_email=fields.get("createdByEmail"),
            created_by_name=fields.get("createdByName"),
            last_modified_by=fields.get("lastModifiedBy"),
            last_modified_by_email=fields.get("lastModifiedByEmail"),
            last_modified_by_name=fields.get("lastModifiedByName"),
            last_modified_at=fields.get("lastModifiedAt"),
            archived_by=fields.get("archivedBy"),
            archived_by_email=fields.get("archivedByEmail"),
            archived_by_name=fields.get("archivedByName"),
            archived_at=fields.get("archivedAt"),
            archived_reason=fields.get("archivedReason"),
            vector_status=vector_status,
            last_synced_at=last_synced_at,
            sync_error=sync_error,
            vector_deleted_at=fields.get("vectorDeletedAt"),
            vector_delete_reason=fields.get("vectorDeleteReason"),
            sync_history=tuple(fields.get("syncHistory") or ()),
        )

    def _parse_documents(self, raw_documents: list[dict]) -> list[tuple[dict, Entry]]:
        parsed: list[tuple[dict, Entry]] = []
        for raw_document in raw_documents:
            try:
                fields = self.decode_document_fields(raw_document)
                parsed.append((fields, self._parse_entry_fields(fields)))
            except ValueError as exc:
                # pydantic.ValidationError is a ValueError
                self.logging.error("Skipping unreadable entry '%s' from %s: %s", raw_document.get("name"), self.get_engine_name(), exc)
        return parsed

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _do_query(self, filters: list[dict], order_by: str | None = None, descending: bool = True) -> list[tuple[dict, Entry]]:
        resp = await self.do_request(
            method="POST",
            json=self.get_query_payload(filters, order_by, descending),
            endpoint=self._get_endpoint_run_query(),
            raise_on_error=True,
        )
        return self._parse_documents(self.extract_query_documents(resp.json()))

    async def do_list_active(self) -> list[Entry]:
        """
        Lists all active entries, newest first.

        Returns:
            list[Entry]: Active entries. Archived entries are never included.
        """
        rows = await self._do_query(filters=[], order_by="createdAt", descending=True)
        entries = [entry for fields, entry in rows if not self.is_archived_document(fields)]
        self.logging.info("Fetched %d active entries from %s", len(entries), self.get_engine_name())
        return entries

    async def do_list_by_category(self, category: str) -> list[Entry]:
        """
        Lists active entries of one category, newest first.

        Args:
            category (str): The metadata category to match.

        Returns:
            list[Entry]: Matching active entries.
        """
        rows = await self._do_query(
            filters=[{"field": "metadata.category", "value": category}],
            order_by="createdAt",
            descending=True,
        )
        return [entry for fields, entry in rows if not self.is_archived_document(fields)]

    async def do_list_archived(self) -> list[Entry]:
        """
        Lists archived entries, most recently archived first.

        Both archive markers are queried concurrently and the results are
        de-duplicated by entry ID.

        Returns:
            list[Entry]: Archived entries.
        """
        by_status, by_flag = await asyncio.gather(
            self._do_query(filters=[{"field": "status", "value": "archived"}]),
            self._do_query(filters=[{"field": "archived", "value": True}]),
        )
        seen: set[str] = set()
        entries: list[Entry] = []
        for _, entry in [*by_status, *by_flag]:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            entries.append(entry)

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        entries.sort(key=lambda e: e.archived_at or epoch, reverse=True)
        self.logging.info("Fetched %d archived entries from %s", len(entries), self.get_engine_name())
        return entries

    async def do_fetch_entry(self, entry_id: str) -> Entry | None:
        """
        Fetches a single entry regardless of its status.

        Args:
            entry_id (str): The ID of the entry.

        Returns:
            Entry | None: The entry, or None if it does not exist.
        """
        try:
            resp = await self.do_request(method="GET", endpoint=self._get_endpoint_document(entry_id), raise_on_error=True)
        except NotFoundError:
            return None
        return self._parse_entry_fields(self.decode_document_fields(resp.json()))
