import asyncio
from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.rag.models.VectorPoint import MAX_TEXT_LENGTH, SearchHit, SegmentRecord
from shared.models.errors import AppError, VectorIndexError

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    """Vector index gateway: batch upsert, delete by filter, top-k similarity search.

    Engines translate FilterExpression objects and SegmentRecord payloads into
    their own wire format. Every failure surfaces as VectorIndexError.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def _require_filter(self, expression: FilterExpression) -> None:
        if expression.is_empty():
            raise VectorIndexError("Refusing to run an unscoped filter operation", detail="filter expression is empty")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    def _get_error_class(self) -> type[AppError]:
        return VectorIndexError

    ################ PAYLOAD BUILDER ##################
    def truncate_text(self, text: str, document_uuid: str, chunk_index: int) -> str:
        """Bound a segment text to the storage limit of the index.

        Args:
            text (str): The cleaned segment text.
            document_uuid (str): Owning document, for the log line.
            chunk_index (int): Segment position, for the log line.

        Returns:
            str: The text, cut to MAX_TEXT_LENGTH characters.
        """
        if len(text) <= MAX_TEXT_LENGTH:
            return text
        self.logging.warning(
            "Segment %d of document %s truncated from %d to %d characters for storage.",
            chunk_index, document_uuid, len(text), MAX_TEXT_LENGTH,
        )
        return text[:MAX_TEXT_LENGTH]

    @abstractmethod
    def get_upsert_payload(self, records: list[SegmentRecord]) -> dict:
        """
        Builds the backend-specific request payload for inserting segment records.

        Args:
            records (list[SegmentRecord]): Records to insert.

        Returns:
            dict: The payload for the upsert request.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, expression: FilterExpression) -> dict:
        """
        Builds the backend-specific request payload for a filter-based delete.
        """
        pass

    @abstractmethod
    def get_count_payload(self, expression: FilterExpression) -> dict:
        """
        Builds the backend-specific request payload for counting points matching a filter.
        """
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], top_k: int, expression: FilterExpression) -> dict:
        """
        Builds the backend-specific request payload for a similarity search.

        Args:
            vector (list[float]): Query vector.
            top_k (int): Maximum number of results.
            expression (FilterExpression): Scope of the search.

        Returns:
            dict: The payload for the search request.
        """
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_upsert_count(self, raw_response: dict, sent: int) -> int:
        """
        Extracts the number of records the backend actually stored.

        Args:
            raw_response (dict): The parsed JSON response body.
            sent (int): Number of records in the request.

        Returns:
            int: Number of inserted records.

        Raises:
            VectorIndexError: If the backend reports a failure in the body.
        """
        pass

    @abstractmethod
    def extract_count(self, raw_response: dict) -> int:
        pass

    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        """
        Maps a raw search response to SearchHit objects, best first.
        """
        pass

    @abstractmethod
    def extract_collection_exists(self, raw_response: dict) -> bool:
        pass

    def check_response_body(self, raw_response: dict) -> None:
        """
        Raises VectorIndexError when a 2xx response still reports a failure in its body.
        Engines that signal errors in the body override this.
        """
        return None

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> tuple[str, str, dict | None]:
        """
        Returns:
            tuple[str, str, dict | None]: HTTP method, endpoint path and optional JSON body.
        """
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> tuple[str, str]:
        """
        Returns:
            tuple[str, str]: HTTP method and endpoint path.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _post_json(self, endpoint: str, payload: dict, method: str = "POST", timeout: float | None = None) -> dict:
        response = await self.do_request(
            method=method,
            json=payload,
            endpoint=endpoint,
            raise_on_error=True,
            timeout=timeout,
        )
        try:
            raw = response.json()
        except ValueError as exc:
            raise VectorIndexError(f"{self.get_engine_name()} returned a non-JSON body", detail=response.text[:200]) from exc
        self.check_response_body(raw)
        return raw

    async def do_existence_check(self) -> bool:
        """Check if the configured collection exists.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        method, endpoint, body = self._get_endpoint_check_collection_existence()
        if body is None:
            response = await self.do_request(method=method, endpoint=endpoint, raise_on_error=True)
            return self.extract_collection_exists(response.json())
        return self.extract_collection_exists(await self._post_json(endpoint, body, method=method))

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the configured collection.

        Args:
            vector_size (int): Dimension of the embedding vectors.
            distance (str): Distance metric for the vectors.
        """
        method, endpoint = self._get_endpoint_create_collection()
        await self._post_json(endpoint, self.get_create_collection_payload(vector_size, distance), method=method)
        self.logging.info(
            "Created %s collection (size=%d, distance=%s).", self.get_engine_name(), vector_size, distance,
        )

    async def do_upsert_batch(self, records: list[SegmentRecord], timeout: float | None = None) -> int:
        """Insert a batch of segment records in one request.

        Args:
            records (list[SegmentRecord]): Records to insert.
            timeout (float | None): Upper bound for the whole call in seconds.

        Returns:
            int: Number of records the backend stored.

        Raises:
            VectorIndexError: If the request fails, times out, or the backend reports an error.
        """
        if not records:
            return 0
        payload = self.get_upsert_payload(records)
        try:
            raw = await asyncio.wait_for(
                self._post_json(self._get_endpoint_upsert(), payload, method=self._get_upsert_method(), timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise VectorIndexError(f"{self.get_engine_name()} upsert timed out after {timeout}s") from exc
        return self.extract_upsert_count(raw, sent=len(records))

    def _get_upsert_method(self) -> str:
        return "POST"

    async def do_count(self, expression: FilterExpression) -> int:
        """Count the points matching a filter.

        Returns:
            int: Number of matching points.
        """
        self._require_filter(expression)
        raw = await self._post_json(self._get_endpoint_count(), self.get_count_payload(expression))
        return self.extract_count(raw)

    async def do_delete_by_filter(self, expression: FilterExpression) -> int:
        """Delete all points matching a filter.

        The count is taken right before the delete since neither engine reports
        how many points a filter delete removed.

        Args:
            expression (FilterExpression): Scope of the delete, never empty.

        Returns:
            int: Number of deleted points.

        Raises:
            VectorIndexError: If the count or the delete fails.
        """
        self._require_filter(expression)
        matching = await self.do_count(expression)
        if matching == 0:
            return 0
        await self._post_json(self._get_endpoint_delete(), self.get_delete_payload(expression))
        return matching

    async def do_search(self, vector: list[float], top_k: int, expression: FilterExpression) -> list[SearchHit]:
        """Top-k similarity search within the scope of a filter.

        Args:
            vector (list[float]): Query vector.
            top_k (int): Maximum number of results.
            expression (FilterExpression): Scope of the search, never empty.

        Returns:
            list[SearchHit]: Results, highest similarity first. Empty when nothing matches.

        Raises:
            VectorIndexError: If the request fails.
        """
        self._require_filter(expression)
        raw = await self._post_json(self._get_endpoint_search(), self.get_search_payload(vector, top_k, expression))
        # backends return hits in rank order
        return self.extract_search_hits(raw)
