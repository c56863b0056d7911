"""Deletion orchestrator.

Removes a document's vectors, its binary and its metadata record. Each of
the three steps is best-effort: a failure is logged and reported in the
summary, and the following steps still run. The record is always deleted
last, since it is the canonical marker of a document's existence.
"""

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import document_context
from shared.models.document import DocumentRecord, Permission, permission_for, utc_now
from shared.models.errors import AppError, DocumentPermissionError, InvalidInputError, NotFoundError
from shared.models.results import BulkDeletionSummary, DeletionSummary

MAX_BULK_DELETE = 100


class DeletionService:
    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        storage_client: StorageClientInterface,
        document_store: DocumentStoreInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self._storage_client = storage_client
        self._document_store = document_store

    ##########################################
    ############### SINGLE ###################
    ##########################################

    async def delete_document(self, document_uuid: str, requester_id: str) -> DeletionSummary:
        """Delete one document owned by the requester.

        Args:
            document_uuid (str): External identifier of the document.
            requester_id (str): Id of the requesting user.

        Returns:
            DeletionSummary: What was removed from each store.

        Raises:
            NotFoundError: If the document does not exist.
            DocumentPermissionError: If the requester is not the owner.
        """
        document = await self._document_store.do_get_by_uuid(document_uuid)
        if document is None:
            raise NotFoundError("PDF not found", context={"uuid": document_uuid})
        if permission_for(document, requester_id) != Permission.OWNER:
            raise DocumentPermissionError(
                "Access denied. Only the owner can delete this PDF.",
                context={"uuid": document_uuid},
            )
        vectors_deleted, vectors_ok = await self._purge_vectors(
            FilterExpression.equals("document_uuid", document.uuid), document.uuid,
        )
        return await self._purge_document(document, vectors_deleted, vectors_ok)

    ##########################################
    ################ BULK ####################
    ##########################################

    async def delete_documents(self, document_uuids: list[str], requester_id: str) -> BulkDeletionSummary:
        """Delete up to MAX_BULK_DELETE documents of the requester.

        Documents that do not exist or are not owned by the requester are
        silently skipped.

        Args:
            document_uuids (list[str]): External identifiers to delete.
            requester_id (str): Id of the requesting user.

        Returns:
            BulkDeletionSummary: Per-document summaries plus the skipped identifiers.

        Raises:
            InvalidInputError: If the list is empty or too long.
            NotFoundError: If none of the documents can be deleted by the requester.
        """
        if not document_uuids:
            raise InvalidInputError("Please provide an array of PDF identifiers to delete")
        if len(document_uuids) > MAX_BULK_DELETE:
            raise InvalidInputError(
                f"Cannot delete more than {MAX_BULK_DELETE} PDFs at once",
                detail=f"received {len(document_uuids)} identifiers",
            )

        # keep request order, drop duplicates
        unique_uuids = list(dict.fromkeys(str(u) for u in document_uuids))
        deletable: list[DocumentRecord] = []
        skipped: list[str] = []
        for document_uuid in unique_uuids:
            document = await self._document_store.do_get_by_uuid(document_uuid)
            if document is None or permission_for(document, requester_id) != Permission.OWNER:
                skipped.append(document_uuid)
                continue
            deletable.append(document)

        if not deletable:
            raise NotFoundError("No PDFs found or access denied")

        summaries = []
        for document in deletable:
            with document_context(document.uuid):
                vectors_deleted, vectors_ok = await self._purge_vectors(
                    FilterExpression.equals("document_uuid", document.uuid), document.uuid,
                )
                summaries.append(await self._purge_document(document, vectors_deleted, vectors_ok))

        self.logging.info(
            "Bulk delete for user %s: %d deleted, %d skipped.", requester_id, len(summaries), len(skipped),
        )
        return BulkDeletionSummary(
            requested=len(document_uuids),
            deleted=sum(1 for s in summaries if s.record_deleted),
            skipped=skipped,
            deleted_vectors=sum(s.deleted_vectors for s in summaries),
            documents=summaries,
        )

    async def delete_all_for_user(self, requester_id: str) -> BulkDeletionSummary:
        """Delete every document of the requester.

        Vectors are removed with one owner-scoped filter, binaries and records per document.

        Raises:
            NotFoundError: If the requester has no documents.
        """
        documents = await self._document_store.do_list(user_id=requester_id)
        if not documents:
            raise NotFoundError("No PDFs found for this user")

        vectors_deleted, vectors_ok = await self._purge_vectors(
            FilterExpression.equals("owner_id", str(requester_id)), f"user {requester_id}",
        )
        summaries = [await self._purge_document(document, 0, vectors_ok) for document in documents]

        self.logging.info(
            "Deleted all %d PDFs of user %s (%d vectors).", len(summaries), requester_id, vectors_deleted,
        )
        return BulkDeletionSummary(
            requested=len(documents),
            deleted=sum(1 for s in summaries if s.record_deleted),
            deleted_vectors=vectors_deleted,
            documents=summaries,
        )

    ##########################################
    ################ STEPS ###################
    ##########################################

    async def _purge_vectors(self, expression: FilterExpression, scope: str) -> tuple[int, bool]:
        try:
            deleted = await self._rag_client.do_delete_by_filter(expression)
            self.logging.info("Deleted %d vectors of %s.", deleted, scope)
            return deleted, True
        except AppError as exc:
            self.logging.error("Vector cleanup failed for %s: %s", scope, exc)
            return 0, False

    async def _purge_document(self, document: DocumentRecord, vectors_deleted: int, vectors_ok: bool) -> DeletionSummary:
        """Delete the binary and then the record of one document."""
        storage_deleted = False
        if document.storage and document.storage.public_id:
            try:
                storage_deleted = await self._storage_client.do_delete(document.storage.public_id)
            except AppError as exc:
                self.logging.error("Binary cleanup failed for %s: %s", document.uuid, exc)
        else:
            self.logging.warning("Document %s has no stored binary to delete.", document.uuid)

        record_deleted = False
        try:
            record_deleted = await self._document_store.do_delete(document.uuid)
        except AppError as exc:
            self.logging.error("Record delete failed for %s: %s", document.uuid, exc)

        if not (vectors_ok and storage_deleted and record_deleted):
            self.logging.warning(
                "Partial cleanup of %s: vectors_ok=%s storage_deleted=%s record_deleted=%s",
                document.uuid, vectors_ok, storage_deleted, record_deleted,
            )
        return DeletionSummary(
            uuid=document.uuid,
            name=document.name,
            original_name=document.original_name,
            total_chunks=document.total_chunks,
            successful_chunks=document.successful_chunks,
            deleted_vectors=vectors_deleted,
            vectors_cleanup_ok=vectors_ok,
            storage_deleted=storage_deleted,
            record_deleted=record_deleted,
            deleted_at=utc_now(),
        )
