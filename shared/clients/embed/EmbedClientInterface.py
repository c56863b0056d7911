import asyncio
from abc import abstractmethod

import httpx
from typing import Tuple
from shared.clients.ClientInterface import ClientInterface
from shared.models.errors import AppError, EmbeddingError

from shared.helper.HelperConfig import HelperConfig

# backend answers worth another attempt
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


class EmbedClientInterface(ClientInterface):
    """Embedding gateway. Turns text into fixed-length vectors.

    Every failure (HTTP error, timeout, empty or malformed vector) surfaces as
    EmbeddingError so callers can treat it as segment-scoped. Timeouts,
    transport errors and 429/5xx answers are retried EMBED_RETRIES times with
    exponential backoff starting at EMBED_RETRY_BACKOFF seconds.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL")

        # retry policy, EMBED_TIMEOUT bounds each single attempt
        self.embed_retries = max(0, int(helper_config.get_number_val(f"{self.get_client_type().upper()}_RETRIES", default=2)))
        self.embed_retry_backoff = float(helper_config.get_number_val(f"{self.get_client_type().upper()}_RETRY_BACKOFF", default=0.5))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def _get_error_class(self) -> type[AppError]:
        return EmbeddingError

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self, batch: bool = False) -> str:
        """
        Returns the endpoint path for embedding requests.

        Args:
            batch (bool): Whether the request carries more than one text.

        Returns:
            str: The endpoint path (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            EmbeddingError: If the response format is invalid or embeddings are empty.
        """
        pass

    @abstractmethod
    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """
        Fetch the output vector dimension and distance metric of the configured embedding model.

        Returns:
            Tuple[int, str]: The number of dimensions produced by the model and the distance metric.

        Raises:
            EmbeddingError: If the dimension cannot be determined.
        """
        pass

    @staticmethod
    def _validate_vector(vector: object, position: int) -> list[float]:
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError("Empty or invalid embedding", detail=f"vector at position {position} is empty")
        try:
            return [float(v) for v in vector]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Empty or invalid embedding", detail=f"vector at position {position} is not numeric") from exc

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _wait_before_retry(self, attempt: int, attempts: int, reason: object) -> None:
        delay = self.embed_retry_backoff * 2 ** (attempt - 1)
        self.logging.warning("Embedding attempt %d/%d failed (%s), retrying in %.2fs.", attempt, attempts, reason, delay)
        await asyncio.sleep(delay)

    async def do_embed(self, texts: list[str] | str, retries: int | None = None) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.
            retries (int | None): Retries on transient failures. None uses EMBED_RETRIES, 0 disables them.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingError: On transport failure, non-200 status, or invalid vectors.
        """
        texts = [texts] if isinstance(texts, str) else texts
        if not texts:
            return []
        body = self.get_embed_payload(texts)
        endpoint = self.get_endpoint_embedding(batch=len(texts) > 1)
        attempts = 1 + (self.embed_retries if retries is None else max(0, retries))
        for attempt in range(1, attempts + 1):
            try:
                response = await self.do_request(method="POST", endpoint=endpoint, json=body)
            except EmbeddingError as exc:
                # transport failure or timeout
                if attempt == attempts:
                    raise
                await self._wait_before_retry(attempt, attempts, exc)
                continue
            if response.status_code in TRANSIENT_STATUS_CODES and attempt < attempts:
                await self._wait_before_retry(attempt, attempts, f"status {response.status_code}")
                continue
            break

        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingError(f"Embedding request failed with status {response.status_code}", detail=response.text[:200])
        try:
            response_data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON", detail=response.text[:200]) from exc

        vectors = self.extract_embeddings_from_response(response_data)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                "Embedding count mismatch",
                detail=f"expected {len(texts)} vectors, got {len(vectors)}",
            )
        return [self._validate_vector(vector, i) for i, vector in enumerate(vectors)]

    async def do_embed_text(self, text: str, retries: int | None = None) -> list[float]:
        """Embed a single text.

        Args:
            text (str): The text to embed.
            retries (int | None): See do_embed().

        Returns:
            list[float]: The embedding vector.

        Raises:
            EmbeddingError: If the text is empty or the embedding fails.
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        vectors = await self.do_embed([text], retries=retries)
        return vectors[0]
