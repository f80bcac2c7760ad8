"""The caller's in-memory view of the knowledge base.

Holds the active and archived entry lists loaded from the entry store and
the set of entries with a mutation in flight. All ``apply_*`` methods are
meant to be called from success branches only, after the remote call has
confirmed the change.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from shared.clients.entrystore.EntryReaderInterface import EntryReaderInterface
from shared.exceptions import OperationInProgressError
from shared.helper.HelperConfig import HelperConfig
from shared.models.entry import Entry
from shared.models.form_data import EntryType


class EntrySession:
    def __init__(self, helper_config: HelperConfig, entry_reader: EntryReaderInterface):
        self.logging = helper_config.get_logger()
        self._entry_reader = entry_reader
        self._active: dict[str, Entry] = {}
        self._archived: dict[str, Entry] = {}
        self._submitting: set[str] = set()

    ##########################################
    ############### LOADING ##################
    ##########################################

    async def do_refresh(self) -> None:
        """Reloads both entry lists from the entry store."""
        active, archived = await asyncio.gather(
            self._entry_reader.do_list_active(),
            self._entry_reader.do_list_archived(),
        )
        self._active = {entry.id: entry for entry in active}
        self._archived = {entry.id: entry for entry in archived}
        self.logging.info("Session loaded %d active and %d archived entries", len(self._active), len(self._archived))

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_active_entries(self) -> list[Entry]:
        return list(self._active.values())

    def get_archived_entries(self) -> list[Entry]:
        return list(self._archived.values())

    def get_entry(self, entry_id: str) -> Entry | None:
        return self._active.get(entry_id) or self._archived.get(entry_id)

    def is_active(self, entry_id: str) -> bool:
        return entry_id in self._active

    def is_submitting(self, entry_id: str) -> bool:
        return entry_id in self._submitting

    ##########################################
    ############ SUBMITTING GUARD ############
    ##########################################

    @asynccontextmanager
    async def submitting(self, entry_id: str) -> AsyncIterator[None]:
        """
        Marks an entry busy for the duration of one mutation.

        Args:
            entry_id (str): The entry about to be mutated.

        Raises:
            OperationInProgressError: If a mutation for this entry is already in flight.
        """
        if entry_id in self._submitting:
            raise OperationInProgressError(f"An operation on entry '{entry_id}' is already in progress")
        self._submitting.add(entry_id)
        try:
            yield
        finally:
            self._submitting.discard(entry_id)

    ##########################################
    ############ SUCCESS BRANCH ##############
    ##########################################

    def apply_created(self, entry: Entry) -> None:
        # newest first, like the store's createdAt-desc listing
        self._active = {entry.id: entry, **self._active}

    def apply_archived(self, entry_id: str, audit: dict[str, Any]) -> Entry | None:
        entry = self._active.pop(entry_id, None)
        if entry is None:
            return None
        entry.apply_archived(audit)
        self._archived = {entry.id: entry, **self._archived}
        return entry

    def apply_restored(self, entry_id: str) -> Entry | None:
        entry = self._archived.pop(entry_id, None)
        if entry is None:
            return None
        entry.apply_restored()
        self._active = {entry.id: entry, **self._active}
        return entry

    def apply_deleted(self, entry_id: str) -> None:
        self._archived.pop(entry_id, None)
        self._active.pop(entry_id, None)

    ##########################################
    ############## DASHBOARD #################
    ##########################################

    def filter_entries(
        self,
        search: str | None = None,
        entry_type: EntryType | str | None = None,
        category: str | None = None,
        user_type: str | None = None,
    ) -> list[Entry]:
        """
        Filters the active entries the way the admin list does.

        Args:
            search (str | None): Case-insensitive substring matched against title and content.
            entry_type (EntryType | str | None): Only entries of this type.
            category (str | None): Only entries in this metadata category.
            user_type (str | None): Only entries for this audience.

        Returns:
            list[Entry]: Matching active entries in listing order.
        """
        needle = (search or "").strip().lower()
        wanted_type = EntryType(entry_type) if entry_type else None

        result = []
        for entry in self._active.values():
            if needle:
                haystack = f"{entry.title}\n{entry.content}".lower()
                if needle not in haystack:
                    continue
            if wanted_type is not None and entry.type != wanted_type:
                continue
            if category and entry.metadata.category != category:
                continue
            if user_type and entry.metadata.userType != user_type:
                continue
            result.append(entry)
        return result

    def sync_summary(self) -> dict[str, dict[str, int]]:
        """
        Counts active entries per type.

        Returns:
            dict[str, dict[str, int]]: For every entry type, ``total``, ``synced``
                                       and ``pending`` (anything not synced).
        """
        summary = {t.value: {"total": 0, "synced": 0, "pending": 0} for t in EntryType}
        for entry in self._active.values():
            counts = summary[entry.type.value]
            counts["total"] += 1
            if entry.is_synced():
                counts["synced"] += 1
            else:
                counts["pending"] += 1
        return summary
