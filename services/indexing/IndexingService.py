"""Indexing orchestrator.

Drives one uploaded PDF through upload -> extraction -> segmentation ->
embedding -> vector upsert and records its state on the document record.

The three stores involved (object store, record store, vector index) fail
independently. Instead of a distributed transaction, every side effect
registers a compensating action on the run. A terminal failure replays the
compensations in reverse order, each one best-effort.
"""

import asyncio
import os
import uuid
from functools import partial
from typing import Awaitable, Callable

from services.indexing.TextExtractor import TextExtractor
from services.segmenting.Segmenter import MIN_SEGMENT_LENGTH, Segmenter, clean_segment
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.rag.models.VectorPoint import SegmentRecord, VectorPoint
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import bind_document, release_document
from shared.models.document import DocumentRecord, IndexingStatus, StoredObject, utc_now
from shared.models.errors import (
    AppError,
    EmbeddingError,
    ExtractionError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    StorageError,
    VectorIndexError,
)
from shared.models.results import IndexingResult

MIN_TEXT_LENGTH = 100           # characters of extracted text required to index a document
PDF_MAGIC = b"%PDF"

REASON_EXTRACTION = "extraction failed"
REASON_INSUFFICIENT = "insufficient content"
REASON_NO_SEGMENTS = "no segments indexed"
REASON_BINARY_GONE = "binary object no longer available"


class _RunAborted(Exception):
    """The document record disappeared while the run was in flight."""


class IndexingRun:
    """State of one indexing run and the compensating actions recorded so far."""

    def __init__(self, logger, stored: StoredObject) -> None:
        self.logging = logger
        self.stored = stored
        self.document: DocumentRecord | None = None
        self.terminal = False
        self._compensations: list[tuple[str, Callable[[], Awaitable[object]]]] = []

    def on_rollback(self, label: str, action: Callable[[], Awaitable[object]]) -> None:
        self._compensations.append((label, action))

    def discard(self) -> None:
        self._compensations.clear()

    async def rollback(self) -> dict[str, bool]:
        """Run all compensations in reverse order. Failures are logged, never raised.

        Returns:
            dict[str, bool]: Outcome per compensation label.
        """
        outcome: dict[str, bool] = {}
        while self._compensations:
            label, action = self._compensations.pop()
            try:
                await action()
                outcome[label] = True
            except AppError as exc:
                self.logging.error("Rollback step '%s' failed for document %s: %s", label, self.document_uuid, exc)
                outcome[label] = False
        return outcome

    @property
    def document_uuid(self) -> str:
        return self.document.uuid if self.document else "<unsaved>"


class IndexingService:
    """Indexes uploaded PDFs into the vector index."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        storage_client: StorageClientInterface,
        document_store: DocumentStoreInterface,
        segmenter: Segmenter | None = None,
        extractor: TextExtractor | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._storage_client = storage_client
        self._document_store = document_store
        self._extractor = extractor or TextExtractor()

        chunk_size = helper_config.get_number_val("INDEXING_CHUNK_SIZE", default=0)
        # -1 leaves the overlap to the segmenter
        chunk_overlap = helper_config.get_number_val("INDEXING_CHUNK_OVERLAP", default=-1)
        self._segmenter = segmenter or Segmenter(
            target_size=int(chunk_size) or None,
            overlap=int(chunk_overlap) if chunk_overlap >= 0 else None,
        )
        self._max_file_bytes = int(helper_config.get_number_val("INDEXING_MAX_FILE_MB", default=5) * 1024 * 1024)
        self._embed_concurrency = max(1, int(helper_config.get_number_val("INDEXING_EMBED_CONCURRENCY", default=4)))
        self._upsert_timeout = float(helper_config.get_number_val("INDEXING_UPSERT_TIMEOUT", default=300))

    ##########################################
    ############### VALIDATION ###############
    ##########################################

    def _validate_upload(self, content: bytes, filename: str, owner_id: str) -> None:
        """Reject uploads that can never be indexed.

        Raises:
            InvalidInputError: On missing owner, empty or oversized content, or non-PDF input.
        """
        if not owner_id or not str(owner_id).strip():
            raise InvalidInputError("An owner id is required to index a document")
        if not content:
            raise InvalidInputError("No PDF file uploaded")
        if not filename or os.path.splitext(filename)[1].lower() != ".pdf":
            raise InvalidInputError("Only PDF files are allowed", detail=f"got file name '{filename}'")
        if not content.startswith(PDF_MAGIC):
            raise InvalidInputError("Only PDF files are allowed", detail="content does not start with a PDF header")
        if len(content) > self._max_file_bytes:
            raise InvalidInputError(
                "PDF file is too large",
                detail=f"{len(content)} bytes exceeds the limit of {self._max_file_bytes} bytes",
            )

    ##########################################
    ############### CORE INDEX ###############
    ##########################################

    async def index_document(self, content: bytes, filename: str, owner_id: str) -> IndexingResult:
        """Upload, extract, segment, embed and index one PDF.

        Args:
            content (bytes): The PDF file content.
            filename (str): Original file name.
            owner_id (str): Id of the uploading user.

        Returns:
            IndexingResult: Outcome with the final document record. success is
                True for full and partial indexing.

        Raises:
            InvalidInputError: Invalid upload, or too little text to index.
            StorageError: Upload failed, nothing was persisted.
            ExtractionError: The PDF could not be parsed.
            EmbeddingError | VectorIndexError: No segment could be indexed.
            NotFoundError: The document was deleted while the run was in flight.
            InternalError: Any unexpected failure.
        """
        owner_id = str(owner_id).strip() if owner_id is not None else ""
        self._validate_upload(content, filename, owner_id)

        self.logging.info("Indexing '%s' (%d bytes) for user %s...", filename, len(content), owner_id)
        stored = await self._storage_client.do_upload(content, filename, owner_id)

        run = IndexingRun(self.logging, stored)
        run.on_rollback("binary object", partial(self._storage_client.do_delete, stored.public_id))
        document_uuid = str(uuid.uuid4())
        log_token = bind_document(document_uuid)
        try:
            run.document = await self._document_store.do_create(DocumentRecord(
                uuid=document_uuid,
                name=filename,
                original_name=filename,
                size=len(content),
                storage_type=self._storage_client.get_engine_name(),
                storage=stored,
                uploaded_by=owner_id,
                indexing_status=IndexingStatus.PENDING,
            ))
            await self._checkpoint(run, indexing_status=IndexingStatus.PROCESSING)
            return await self._process(run, content)
        except _RunAborted:
            self.logging.warning(
                "Document %s was deleted during indexing. Cleaning up its vectors and binary.", run.document_uuid,
            )
            run.terminal = True
            await run.rollback()
            raise NotFoundError(
                "Document was deleted while indexing was in progress",
                context={"uuid": run.document_uuid},
            )
        except Exception as exc:
            if run.terminal:
                raise
            self.logging.exception("Indexing of '%s' failed: %s", filename, exc)
            await self._fail(run, str(exc) or exc.__class__.__name__)
            if isinstance(exc, AppError):
                exc.context.setdefault("uuid", run.document_uuid)
                raise
            raise InternalError("Internal error during PDF indexing", detail=str(exc), context={"uuid": run.document_uuid}) from exc
        finally:
            release_document(log_token)

    async def _process(self, run: IndexingRun, content: bytes) -> IndexingResult:
        document_uuid = run.document.uuid

        # extraction
        try:
            extracted = await self._extractor.extract(content)
        except ExtractionError as exc:
            await self._fail(run, REASON_EXTRACTION)
            raise ExtractionError(
                "Failed to parse the PDF. Please try uploading a valid PDF file.",
                detail=exc.detail,
                context={"uuid": document_uuid},
            ) from exc
        self.logging.info("Extracted %d characters from %d page(s) of %s.", len(extracted.text), extracted.page_count, document_uuid)
        await self._checkpoint(run, page_count=extracted.page_count)

        if len(extracted.text.strip()) < MIN_TEXT_LENGTH:
            await self._fail(run, REASON_INSUFFICIENT)
            raise InvalidInputError(
                "PDF contains insufficient text content for indexing. Please ensure the PDF contains readable text.",
                context={"uuid": document_uuid},
            )

        # segmentation
        target_size, overlap = self._segmenter.describe(extracted.text)
        segments = self._segmenter.segment(extracted.text)
        if not segments:
            raise InternalError("Segmenter produced no segments for non-empty text")
        self.logging.info(
            "Created %d segments (size=%d, overlap=%d) for %s.", len(segments), target_size, overlap, document_uuid,
        )

        # embedding and upsert
        records = await self._embed_segments(run.document, segments)
        failed_chunks = len(segments) - len(records)
        if records:
            run.on_rollback("vectors", partial(self._rag_client.do_delete_by_filter, FilterExpression.equals("document_uuid", document_uuid)))
        successful = await self._upsert(records) if records else 0

        if successful and not await self._binary_available(run.stored):
            await self._fail(run, REASON_BINARY_GONE)
            raise StorageError(
                "The uploaded file disappeared from storage during indexing",
                context={"uuid": document_uuid},
            )

        if successful == 0:
            await self._fail(run, REASON_NO_SEGMENTS, total_chunks=len(segments))
            error_class = EmbeddingError if not records else VectorIndexError
            raise error_class("Indexing failed. No segments were saved.", context={"uuid": document_uuid})

        await self._checkpoint(
            run,
            indexing_status=IndexingStatus.COMPLETED,
            total_chunks=len(segments),
            successful_chunks=successful,
            is_indexed=True,
            indexed_at=utc_now(),
            error_message=None,
        )
        run.discard()
        run.terminal = True

        message = self._build_message(successful, len(segments))
        self.logging.info("Document %s: %s", document_uuid, message, color="green")
        return IndexingResult(
            success=True,
            message=message,
            document=run.document,
            segment_size=target_size,
            segment_overlap=overlap,
            failed_chunks=len(segments) - successful,
        )

    ##########################################
    ############### SEGMENTS #################
    ##########################################

    async def _embed_segments(self, document: DocumentRecord, segments: list[str]) -> list[SegmentRecord]:
        """Embed all segments with bounded parallelism.

        Failed or too-short segments are logged and left out; the rest keep
        their position in the segment list as chunk_index.

        Returns:
            list[SegmentRecord]: Embedded segments ordered by chunk_index.
        """
        sem = asyncio.Semaphore(self._embed_concurrency)
        created_at = utc_now().isoformat()

        async def _embed_one(chunk_index: int, segment: str) -> SegmentRecord | None:
            cleaned = clean_segment(segment)
            if len(cleaned) < MIN_SEGMENT_LENGTH:
                self.logging.info("Skipping segment %d of %s: too short (%d characters).", chunk_index, document.uuid, len(cleaned))
                return None
            async with sem:
                try:
                    vector = await self._embed_client.do_embed_text(cleaned)
                except EmbeddingError as exc:
                    self.logging.error("Embedding failed for segment %d of %s: %s", chunk_index, document.uuid, exc)
                    return None
            return SegmentRecord(
                vector=vector,
                payload=VectorPoint(
                    document_uuid=document.uuid,
                    document_name=document.name,
                    chunk_index=chunk_index,
                    chunk_text=cleaned,
                    owner_id=document.uploaded_by,
                    created_at=created_at,
                    source_url=document.storage.url if document.storage else None,
                ),
            )

        tasks = [asyncio.ensure_future(_embed_one(i, s)) for i, s in enumerate(segments)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # no embedding call may outlive a failed run
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        records = [record for record in results if record is not None]
        self.logging.info("Embedded %d of %d segments of %s.", len(records), len(segments), document.uuid)
        return records

    async def _upsert(self, records: list[SegmentRecord]) -> int:
        """Insert all records in one bounded batch, falling back to one call per record.

        Returns:
            int: Number of records that actually landed in the index.
        """
        try:
            inserted = await self._rag_client.do_upsert_batch(records, timeout=self._upsert_timeout)
            return min(inserted, len(records))
        except VectorIndexError as exc:
            self.logging.error("Batch upsert of %d segments failed: %s. Falling back to single inserts.", len(records), exc)
        await self._purge_partial_batch(records[0].payload.document_uuid)

        inserted = 0
        for record in records:
            try:
                inserted += await self._rag_client.do_upsert_batch([record], timeout=self._upsert_timeout)
            except VectorIndexError as exc:
                self.logging.error(
                    "Single insert failed for segment %d of %s: %s",
                    record.payload.chunk_index, record.payload.document_uuid, exc,
                )
        return min(inserted, len(records))

    async def _purge_partial_batch(self, document_uuid: str) -> None:
        """Drop whatever a failed batch may have committed before single inserts start.

        A batch that timed out on the client can still land on the server.
        Engines with server-generated ids (Milvus autoId) would otherwise hold
        every one of those segments twice.
        """
        try:
            removed = await self._rag_client.do_delete_by_filter(FilterExpression.equals("document_uuid", document_uuid))
        except VectorIndexError as exc:
            self.logging.warning("Could not clear the failed batch of %s before single inserts: %s", document_uuid, exc)
            return
        if removed:
            self.logging.warning("Removed %d vectors of a partially committed batch of %s.", removed, document_uuid)

    async def _binary_available(self, stored: StoredObject) -> bool:
        try:
            return await self._storage_client.do_exists(stored.public_id)
        except StorageError as exc:
            # an unreachable store is no proof of absence
            self.logging.warning("Could not verify binary %s: %s", stored.public_id, exc)
            return True

    ##########################################
    ############### CHECKPOINTS ##############
    ##########################################

    async def _checkpoint(self, run: IndexingRun, **changes) -> None:
        """Persist changes to the run's document record.

        Raises:
            _RunAborted: If the record no longer exists.
        """
        updated = DocumentRecord.model_validate({**run.document.model_dump(), **changes})
        if not await self._document_store.do_update(updated):
            raise _RunAborted()
        run.document = updated

    async def _fail(self, run: IndexingRun, reason: str, **changes) -> None:
        """Move the run to its terminal failed state and compensate. Never raises."""
        run.terminal = True
        outcome = await run.rollback()
        if outcome:
            self.logging.info("Compensated document %s: %s", run.document_uuid, outcome)
        if run.document is None:
            return
        try:
            await self._checkpoint(
                run,
                indexing_status=IndexingStatus.FAILED,
                error_message=reason,
                is_indexed=False,
                successful_chunks=0,
                **changes,
            )
        except _RunAborted:
            self.logging.warning("Document %s vanished before its failure could be recorded.", run.document_uuid)
        except Exception as exc:
            self.logging.error("Could not record failure of document %s: %s", run.document_uuid, exc)
        self.logging.warning("Indexing of document %s failed: %s", run.document_uuid, reason)

    @staticmethod
    def _build_message(successful: int, total: int) -> str:
        if successful == total:
            return "All segments were successfully indexed."
        if successful == 0:
            return "Indexing failed. No segments were saved."
        return f"Partially indexed: {successful} out of {total} segments were successfully indexed."
