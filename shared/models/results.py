"""Result models returned by the orchestrators."""

from datetime import datetime

from pydantic import BaseModel

from shared.models.document import DocumentRecord, ListScope


class IndexingResult(BaseModel):
    """Outcome of one indexing run.

    success is True whenever at least one segment landed in the vector index,
    message distinguishes full from partial indexing.
    """

    success: bool
    message: str
    document: DocumentRecord
    segment_size: int
    segment_overlap: int
    failed_chunks: int = 0


class DocumentPage(BaseModel):
    """One page of a document listing. total counts every match, not just this page."""

    documents: list[DocumentRecord]
    total: int
    limit: int
    offset: int
    scope: ListScope

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.documents) < self.total


class DeletionSummary(BaseModel):
    uuid: str
    name: str
    original_name: str
    total_chunks: int
    successful_chunks: int
    deleted_vectors: int
    vectors_cleanup_ok: bool
    storage_deleted: bool
    record_deleted: bool
    deleted_at: datetime


class BulkDeletionSummary(BaseModel):
    requested: int
    deleted: int
    skipped: list[str] = []
    deleted_vectors: int = 0
    documents: list[DeletionSummary] = []


class RetrievedSegment(BaseModel):
    """One retrieved segment. rank is its position in the search result, 0 is best."""

    rank: int
    chunk_index: int
    score: float
    text: str


class AnswerResult(BaseModel):
    document_uuid: str
    document_name: str
    query: str
    answer: str
    context_chunks_used: int
    segments: list[RetrievedSegment]
