"""VectorChunk model: one embeddable fragment of an entry as listed by the vector index."""

from pydantic import BaseModel

CHUNK_ID_MARKER = "_chunk_"


def resolve_parent_id(vector_id: str) -> str:
    """
    Resolves a chunk ID to the ID of its parent entry.

    Chunk IDs have the form "<parentId>_chunk_<n>"; any other ID is already
    a parent ID and is returned unchanged.

    Args:
        vector_id (str): A parent or chunk ID.

    Returns:
        str: The parent entry ID.
    """
    if CHUNK_ID_MARKER in vector_id:
        return vector_id.split(CHUNK_ID_MARKER, 1)[0]
    return vector_id


def chunk_position(vector_id: str) -> int | None:
    """Returns the chunk number encoded in a chunk ID, or None for parent IDs."""
    if CHUNK_ID_MARKER not in vector_id:
        return None
    suffix = vector_id.rsplit(CHUNK_ID_MARKER, 1)[1]
    return int(suffix) if suffix.isdigit() else None


class VectorChunk(BaseModel):
    """
    A chunk stored in the vector index.

    Attributes:
        parent_entry_id:  ID of the entry this chunk belongs to.
        chunk_id:         ID of the chunk itself (equals parent_entry_id for unchunked entries).
        section:          Section of the canonical content the chunk was cut from, if known.
        position_index:   Zero-based position of the chunk within the entry.
        total_chunks:     Number of chunks the entry was split into.
        content_preview:  Leading text of the chunk.
        title:            Title of the parent entry.
        entry_type:       Type of the parent entry.
        category:         Category of the parent entry.
    """

    parent_entry_id: str
    chunk_id: str
    section: str | None = None
    position_index: int = 0
    total_chunks: int = 1
    content_preview: str = ""

    title: str | None = None
    entry_type: str | None = None
    category: str | None = None

    def is_chunk(self) -> bool:
        return self.chunk_id != self.parent_entry_id
