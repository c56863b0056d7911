"""VectorPoint model: metadata stored alongside each segment vector in a RAG backend."""

from pydantic import BaseModel, field_validator

# storage limit of the text field in the vector index
MAX_TEXT_LENGTH = 3000


class VectorPoint(BaseModel):
    """Payload stored alongside each segment vector.

    The owner_id field is mandatory and enforced as a security invariant on
    every upsert; it must never be empty.

    Attributes:
        document_uuid:  External identifier of the owning document, used for scoping.
        document_name:  Display name of the owning document.
        chunk_index:    Zero-based position of this segment within the document.
        chunk_text:     Cleaned segment text, at most MAX_TEXT_LENGTH characters.
        owner_id:       Mandatory id of the uploading user.
        created_at:     ISO-8601 ingestion timestamp.
        source_url:     Durable URL of the source binary.
    """

    document_uuid: str
    document_name: str
    chunk_index: int
    chunk_text: str

    # never empty, every search and delete scopes on it
    owner_id: str

    created_at: str
    source_url: str | None = None

    @field_validator("owner_id")
    @classmethod
    def _owner_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("owner_id must not be empty")
        return value

    @field_validator("chunk_index")
    @classmethod
    def _index_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("chunk_index must be zero or positive")
        return value


class SegmentRecord(BaseModel):
    """A segment ready to be written: its vector plus the payload."""

    vector: list[float]
    payload: VectorPoint


class SearchHit(BaseModel):
    """One result of a similarity search, best results first in a result list."""

    text: str
    score: float
    chunk_index: int
    document_uuid: str
