"""Document upload models: a file turned into an entry by the backend."""

from pydantic import BaseModel

from shared.models.entry import EntryMetadata
from shared.models.form_data import EntryType


class DocumentUpload(BaseModel):
    """
    Form fields sent alongside an uploaded file.

    Attributes:
        title (str): Title for the resulting entry.
        entry_type (EntryType): Template the backend should file the document under.
        metadata (EntryMetadata): Organisational metadata; category is required for property_engine.
        auto_sync (bool): Whether the backend should embed the document right away.
    """

    title: str
    entry_type: EntryType
    metadata: EntryMetadata = EntryMetadata()
    auto_sync: bool = True

    def to_form_fields(self) -> dict[str, str]:
        return {
            "title": self.title,
            "entry_type": self.entry_type.value,
            "userType": self.metadata.userType,
            "product": self.metadata.product,
            "category": self.metadata.category,
            "subcategory": self.metadata.subcategory or "",
            "tags": ", ".join(self.metadata.tags),
            "auto_sync": "true" if self.auto_sync else "false",
        }


class UploadSyncStatus(BaseModel):
    success: bool | None = None
    chunks_created: int | None = None
    status: str | None = None
    message: str | None = None
    error: str | None = None


class DocumentUploadResult(BaseModel):
    entry_id: str
    title: str | None = None
    sections_extracted: int | None = None
    word_count: int | None = None
    sync_status: UploadSyncStatus | None = None
    message: str | None = None


class DocumentStatus(BaseModel):
    entry_id: str
    title: str | None = None
    vector_status: str | None = None
    chunks_created: int | None = None
    sync_error: str | None = None
    source: str | None = None
    original_filename: str | None = None
