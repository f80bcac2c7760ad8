import pydantic

from shared.clients.kb.KBClientInterface import KBClientInterface
from shared.clients.kb.models.VectorChunk import VectorChunk, chunk_position, resolve_parent_id
from shared.exceptions import BackendError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import KBApiConfig


class VectorIndexClient(KBClientInterface):
    """
    Chunk-aware access to the vector index through the KB backend.

    A sync regenerates all chunks of an entry in one call; the backend
    removes the previous generation as part of that call, so old and new
    chunks are never queryable side by side.
    """

    def __init__(self, helper_config: HelperConfig, api_config: KBApiConfig | None = None):
        super().__init__(helper_config=helper_config, api_config=api_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ ENDPOINTS ##################
    def _get_endpoint_sync(self, entry_id: str) -> str:
        return f"/api/kb/entries/{entry_id}/sync"

    def _get_endpoint_vectors(self) -> str:
        return "/api/kb/vectors"

    def _get_endpoint_vector(self, entry_id: str) -> str:
        return f"/api/kb/vectors/{entry_id}"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_vector_entry(self, item: dict) -> VectorChunk:
        chunk_id = str(item.get("entry_id") or item.get("id") or "")
        metadata = item.get("metadata") or {}
        parent_id = metadata.get("parent_entry_id") or resolve_parent_id(chunk_id)

        position = chunk_position(chunk_id)
        if position is None:
            position = metadata.get("chunk_index") or 0

        return VectorChunk(
            parent_entry_id=str(parent_id),
            chunk_id=chunk_id,
            section=metadata.get("chunk_section"),
            position_index=position,
            total_chunks=metadata.get("total_chunks") or 1,
            content_preview=item.get("content_preview") or "",
            title=metadata.get("parent_title") or item.get("title"),
            entry_type=metadata.get("entryType") or metadata.get("type"),
            category=metadata.get("category"),
        )

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_sync(self, entry_id: str) -> int:
        """
        (Re)generates all vector chunks of an entry.

        Args:
            entry_id (str): The ID of the entry; chunk IDs are resolved to their parent.

        Returns:
            int: Number of chunks created.

        Raises:
            BackendError | NetworkError: If the sync was rejected or the backend is unreachable.
        """
        entry_id = resolve_parent_id(entry_id)
        body = await self.do_kb_request(method="POST", endpoint=self._get_endpoint_sync(entry_id))
        chunks_created = int(body.get("chunks_created") or 0)
        self.logging.info("Synced entry id=%s: %d chunk(s) created", entry_id, chunks_created)
        return chunks_created

    async def do_list_entries(self, limit: int = 100) -> list[VectorChunk]:
        """
        Lists chunks currently held by the vector index.

        Args:
            limit (int): Maximum number of chunks to return.

        Returns:
            list[VectorChunk]: The listed chunks.
        """
        body = await self.do_kb_request(method="GET", endpoint=self._get_endpoint_vectors(), params={"limit": limit})
        raw_entries = body.get("entries") or []
        if not isinstance(raw_entries, list):
            raise BackendError("Malformed vector listing: 'entries' is not a list")
        try:
            chunks = [self._parse_vector_entry(item) for item in raw_entries]
        except (pydantic.ValidationError, AttributeError) as exc:
            raise BackendError(f"Malformed vector listing: {exc}") from exc
        self.logging.info("Fetched %d vector chunk(s)", len(chunks))
        return chunks

    async def do_delete(self, vector_id: str) -> int:
        """
        Deletes an entry and every chunk belonging to it from the vector index.

        Args:
            vector_id (str): A parent ID or any of its chunk IDs.

        Returns:
            int: Number of chunks deleted.
        """
        parent_id = resolve_parent_id(vector_id)
        body = await self.do_kb_request(method="DELETE", endpoint=self._get_endpoint_vector(parent_id))
        chunks_deleted = int(body.get("chunks_deleted") or 0)
        self.logging.info("Deleted %d vector chunk(s) of entry id=%s", chunks_deleted, parent_id)
        return chunks_deleted
