"""DuplicateCandidate model: a transient, never persisted similarity hit."""

from pydantic import BaseModel, Field


class DuplicateCandidate(BaseModel):
    """
    An existing entry that looks similar to one about to be created.

    Attributes:
        id:               ID of the existing entry.
        title:            Title of the existing entry.
        type:             Entry type of the existing entry.
        category:         Category of the existing entry, if any.
        content_snippet:  Leading text of the existing entry.
        similarity_score: Similarity in [0, 1], e.g. 0.92 = 92% similar.
        created_at:       Creation timestamp as reported by the backend.
    """

    id: str
    title: str
    type: str
    category: str | None = None
    content_snippet: str = ""
    similarity_score: float = Field(ge=0.0, le=1.0)
    created_at: str | None = None

    def get_similarity_label(self) -> str:
        if self.similarity_score >= 0.9:
            return "Very Similar"
        if self.similarity_score >= 0.75:
            return "Similar"
        return "Somewhat Similar"

    def get_similarity_percent(self) -> int:
        return round(self.similarity_score * 100)
