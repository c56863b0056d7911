from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentRecord, IndexingStatus, ListScope, Permission, has_permission
from shared.models.errors import DocumentPermissionError, InvalidInputError, NotFoundError
from shared.models.results import DocumentPage


class DocumentService:
    """Read-only access to document records, scoped to the requesting user."""

    def __init__(self, helper_config: HelperConfig, document_store: DocumentStoreInterface) -> None:
        self.logging = helper_config.get_logger()
        self._document_store = document_store
        self._page_size = int(helper_config.get_number_val("DOCUMENTS_PAGE_SIZE", default=10))
        self._max_page_size = int(helper_config.get_number_val("DOCUMENTS_MAX_PAGE_SIZE", default=100))

    async def get_info(self, document_uuid: str, requester_id: str) -> DocumentRecord:
        """Return one document record.

        Raises:
            NotFoundError: If the document does not exist.
            DocumentPermissionError: If the requester may not read it.
        """
        document = await self._document_store.do_get_by_uuid(document_uuid)
        if document is None:
            raise NotFoundError("PDF not found", context={"uuid": document_uuid})
        if not has_permission(document, requester_id, Permission.READ):
            raise DocumentPermissionError("Access denied to this PDF", context={"uuid": document_uuid})
        return document

    async def list_documents(
        self,
        requester_id: str,
        status: str | None = None,
        scope: str = ListScope.OWNED.value,
        limit: int | None = None,
        offset: int = 0,
    ) -> DocumentPage:
        """List documents visible to the requester, newest first, one page at a time.

        Args:
            requester_id (str): Id of the requesting user.
            status (str | None): Optional indexing status to filter on.
            scope (str): "owned", "shared" (shared with the requester), "public" or "all".
            limit (int | None): Page size, DOCUMENTS_PAGE_SIZE when unset.
            offset (int): Number of matching documents to skip.

        Returns:
            DocumentPage: The page with the total number of matches.

        Raises:
            InvalidInputError: On an unknown status or scope, or an out-of-range limit or offset.
        """
        status_filter = None
        if status:
            try:
                status_filter = IndexingStatus(status)
            except ValueError as exc:
                valid = ", ".join(s.value for s in IndexingStatus)
                raise InvalidInputError(f"Invalid status. Must be one of: {valid}", detail=status) from exc
        try:
            scope_filter = ListScope(scope or ListScope.OWNED.value)
        except ValueError as exc:
            valid = ", ".join(s.value for s in ListScope)
            raise InvalidInputError(f"Invalid scope. Must be one of: {valid}", detail=scope) from exc

        limit = self._page_size if limit is None else limit
        if not 1 <= limit <= self._max_page_size:
            raise InvalidInputError(f"limit must be between 1 and {self._max_page_size}", detail=str(limit))
        if offset < 0:
            raise InvalidInputError("offset must not be negative", detail=str(offset))

        total = await self._document_store.do_count(user_id=requester_id, status=status_filter, scope=scope_filter)
        documents = []
        if offset < total:
            documents = await self._document_store.do_list(
                user_id=requester_id, status=status_filter, scope=scope_filter, limit=limit, offset=offset,
            )
        self.logging.debug(
            "Listed %d of %d documents for user %s (scope=%s, status=%s).",
            len(documents), total, requester_id, scope_filter.value, status,
        )
        return DocumentPage(documents=documents, total=total, limit=limit, offset=offset, scope=scope_filter)
