"""Shared fixtures: in-memory gateways standing in for the external capabilities."""

import asyncio
import logging
from typing import Callable

import pytest

from services.indexing.TextExtractor import ExtractedText
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.rag.models.VectorPoint import SearchHit, SegmentRecord, VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.document import DocumentRecord, IndexingStatus, ListScope, StoredObject
from shared.models.errors import EmbeddingError, ExtractionError, InvalidInputError, StorageError, VectorIndexError

PDF_BYTES = b"%PDF-1.4\n% test document\n"
LONG_TEXT = "This page explains how the retention policy applies to archived contracts. " * 5


def _matches(payload: dict, expression: FilterExpression) -> bool:
    for condition in expression.conditions:
        value = payload.get(condition.field)
        if condition.op == "in":
            if value not in condition.value:
                return False
        elif value != condition.value:
            return False
    return True


class FakeEmbedClient:
    """Deterministic embeddings. Texts containing a fail marker raise EmbeddingError.

    Each call waits self.delay seconds, peak_in_flight records the highest
    number of calls running at the same time.
    """

    def __init__(self) -> None:
        self.fail_markers: set[str] = set()
        self.fail_all = False
        self.calls: list[str] = []
        self.retries: list[int | None] = []
        self.on_embed: Callable[[str], None] | None = None
        self.delay = 0.0
        self.in_flight = 0
        self.peak_in_flight = 0

    async def do_embed_text(self, text: str, retries: int | None = None) -> list[float]:
        self.calls.append(text)
        self.retries.append(retries)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.on_embed:
                self.on_embed(text)
            if self.fail_all or any(marker in text for marker in self.fail_markers):
                raise EmbeddingError("Embedding backend failed", detail=text[:20])
            return [float(len(text)), 1.0, 0.5]
        finally:
            self.in_flight -= 1


class FakeRAGClient:
    """In-memory vector index. Search scores come from self.scores keyed by chunk_index."""

    def __init__(self) -> None:
        self.records: list[SegmentRecord] = []
        self.fail_batch = False
        # batch lands in the index but the caller still sees an error, like a client-side timeout
        self.commit_then_fail_batch = False
        self.fail_all_upserts = False
        self.fail_chunks: set[int] = set()
        self.fail_delete = False
        self.fail_search = False
        self.scores: dict[int, float] = {}
        self.upsert_calls: list[int] = []
        self.search_calls: list[tuple[int, FilterExpression]] = []

    def payloads(self, document_uuid: str | None = None) -> list[dict]:
        payloads = [record.payload.model_dump() for record in self.records]
        if document_uuid is None:
            return payloads
        return [p for p in payloads if p["document_uuid"] == document_uuid]

    async def do_upsert_batch(self, records: list[SegmentRecord], timeout: float | None = None) -> int:
        self.upsert_calls.append(len(records))
        if self.fail_all_upserts or (self.fail_batch and len(records) > 1):
            raise VectorIndexError("Upsert failed")
        if any(record.payload.chunk_index in self.fail_chunks for record in records):
            raise VectorIndexError("Upsert failed for chunk")
        if self.commit_then_fail_batch and len(records) > 1:
            self.records.extend(records)
            raise VectorIndexError("Upsert timed out")
        self.records.extend(records)
        return len(records)

    async def do_delete_by_filter(self, expression: FilterExpression) -> int:
        if self.fail_delete:
            raise VectorIndexError("Delete failed")
        kept = [r for r in self.records if not _matches(r.payload.model_dump(), expression)]
        deleted = len(self.records) - len(kept)
        self.records = kept
        return deleted

    async def do_search(self, vector: list[float], top_k: int, expression: FilterExpression) -> list[SearchHit]:
        self.search_calls.append((top_k, expression))
        if self.fail_search:
            raise VectorIndexError("Search failed")
        hits = [
            SearchHit(
                text=r.payload.chunk_text,
                score=self.scores.get(r.payload.chunk_index, 0.1),
                chunk_index=r.payload.chunk_index,
                document_uuid=r.payload.document_uuid,
            )
            for r in self.records
            if _matches(r.payload.model_dump(), expression)
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]


class FakeStorageClient:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.fail_upload = False
        self.fail_delete = False
        self._counter = 0

    def get_engine_name(self) -> str:
        return "fake"

    async def do_upload(self, content: bytes, filename: str, owner_id: str) -> StoredObject:
        if self.fail_upload:
            raise StorageError("Upload failed")
        self._counter += 1
        public_id = f"pdfs/{owner_id}/{self._counter}_{filename}"
        self.objects[public_id] = content
        return StoredObject(url=f"https://files.test/{public_id}", public_id=public_id, bytes=len(content), format="pdf")

    async def do_delete(self, public_id: str) -> bool:
        if self.fail_delete:
            raise StorageError("Delete failed")
        return self.objects.pop(public_id, None) is not None

    async def do_exists(self, public_id: str) -> bool:
        return public_id in self.objects


class FakeDocumentStore:
    def __init__(self) -> None:
        self.records: dict[str, DocumentRecord] = {}
        self.updates: list[DocumentRecord] = []
        self._next_id = 1

    async def do_create(self, record: DocumentRecord) -> DocumentRecord:
        if record.uuid in self.records:
            raise InvalidInputError("A document with this uuid already exists")
        stored = record.model_copy(update={"id": self._next_id}, deep=True)
        self._next_id += 1
        self.records[record.uuid] = stored
        return stored

    async def do_get_by_uuid(self, document_uuid: str) -> DocumentRecord | None:
        record = self.records.get(document_uuid)
        return record.model_copy(deep=True) if record else None

    async def do_update(self, record: DocumentRecord) -> bool:
        if record.uuid not in self.records:
            return False
        self.records[record.uuid] = record.model_copy(deep=True)
        self.updates.append(record)
        return True

    async def do_delete(self, document_uuid: str) -> bool:
        return self.records.pop(document_uuid, None) is not None

    def _matching(self, user_id, status, scope) -> list[DocumentRecord]:
        def visible(record: DocumentRecord) -> bool:
            if user_id is None:
                return True
            owned = record.uploaded_by == user_id
            shared = any(share.user_id == user_id for share in record.shared_with) and not owned
            return {
                ListScope.OWNED: owned,
                ListScope.SHARED: shared,
                ListScope.PUBLIC: record.is_public,
                ListScope.ALL: owned or shared or record.is_public,
            }[ListScope(scope)]

        records = [r for r in self.records.values() if visible(r)]
        if status is not None:
            records = [r for r in records if r.indexing_status == status]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def do_list(self, user_id=None, status=None, scope=ListScope.OWNED, limit=None, offset=0) -> list[DocumentRecord]:
        records = self._matching(user_id, status, scope)[offset:]
        return records if limit is None else records[:limit]

    async def do_count(self, user_id=None, status=None, scope=ListScope.OWNED) -> int:
        return len(self._matching(user_id, status, scope))


class FakeLLMClient:
    def __init__(self, reply: str = "The retention period is seven years.") -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def do_generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


class FakeExtractor:
    def __init__(self, text: str = LONG_TEXT, page_count: int = 3, fail: bool = False) -> None:
        self.text = text
        self.page_count = page_count
        self.fail = fail

    async def extract(self, content: bytes) -> ExtractedText:
        if self.fail:
            raise ExtractionError("Failed to parse PDF content", detail="broken xref table")
        return ExtractedText(text=self.text, page_count=self.page_count)


class StaticSegmenter:
    """Returns a fixed list of segments regardless of the text."""

    def __init__(self, segments: list[str], target_size: int = 250, overlap: int = 50) -> None:
        self.segments = segments
        self.target_size = target_size
        self.overlap = overlap

    def segment(self, text: str) -> list[str]:
        return list(self.segments)

    def describe(self, text: str) -> tuple[int, int]:
        return self.target_size, self.overlap


def make_segments(count: int) -> list[str]:
    return [f"Segment {i} describes clause {i} of the contract in plain words." for i in range(count)]


def seed_document(document_store, rag_client, storage_client, document_uuid, owner_id, chunks=3):
    public_id = f"pdfs/{owner_id}/{document_uuid}"
    storage_client.objects[public_id] = b"%PDF"
    record = DocumentRecord(
        uuid=document_uuid,
        name=f"{document_uuid}.pdf",
        original_name=f"{document_uuid}.pdf",
        storage=StoredObject(url=f"https://files.test/{public_id}", public_id=public_id),
        uploaded_by=owner_id,
        indexing_status=IndexingStatus.COMPLETED if chunks else IndexingStatus.PENDING,
        is_indexed=bool(chunks),
        total_chunks=chunks,
        successful_chunks=chunks,
    )
    document_store.records[document_uuid] = record
    for index in range(chunks):
        rag_client.records.append(SegmentRecord(
            vector=[0.1, 0.2, 0.3],
            payload=VectorPoint(
                document_uuid=document_uuid,
                document_name=record.name,
                chunk_index=index,
                chunk_text=f"text {index} of {document_uuid}",
                owner_id=owner_id,
                created_at="2026-01-01T00:00:00+00:00",
            ),
        ))
    return record


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("pdf_rag_bridge.tests")))


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def rag_client() -> FakeRAGClient:
    return FakeRAGClient()


@pytest.fixture
def storage_client() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()
