from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.FilterExpression import FilterExpression
from shared.clients.rag.models.VectorPoint import SearchHit
from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Permission, permission_for
from shared.models.errors import DocumentPermissionError, InvalidInputError, NoMatchError, NotFoundError
from shared.models.results import AnswerResult, RetrievedSegment

DEFAULT_TOP_K = 5

REFUSAL_TEMPLATE = 'Sorry, I cannot find the answer to your question "{query}" in this document.'

GROUNDING_PROMPT = (
    "You are an intelligent assistant designed to answer queries strictly based on the provided "
    "context from a specific PDF document. Do not use external knowledge or make assumptions beyond "
    "the context. If the context lacks sufficient information, respond with: \"{refusal}\"\n\n"
    "Context from PDF:\n{context}\n\n"
    "User Query: {query}\n\n"
    "Please provide a comprehensive answer based only on the information available in the context above."
)


def build_context(hits: list[SearchHit]) -> str:
    """Join hit texts in the order the index returned them."""
    return "\n\n".join(hit.text for hit in hits)


def build_prompt(query: str, context: str) -> str:
    """Render the grounding prompt for one query.

    Args:
        query (str): The literal user query, also embedded in the refusal phrase.
        context (str): Retrieved segment texts.

    Returns:
        str: The full prompt for the generative model.
    """
    return GROUNDING_PROMPT.format(
        refusal=REFUSAL_TEMPLATE.format(query=query),
        context=context,
        query=query,
    )


class AnswerService:
    """Answers questions about one document: embed -> search -> ground -> generate."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        llm_client: LLMClientInterface,
        document_store: DocumentStoreInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._llm_client = llm_client
        self._document_store = document_store
        self._top_k = max(1, int(helper_config.get_number_val("ANSWER_TOP_K", default=DEFAULT_TOP_K)))

    ##########################################
    ############### CORE #####################
    ##########################################

    async def answer(self, document_uuid: str, query: str, requester_id: str) -> AnswerResult:
        """Answer a question using only the content of one document.

        Args:
            document_uuid (str): Document to search in.
            query (str): The user's question.
            requester_id (str): Id of the requesting user, needs at least read permission.

        Returns:
            AnswerResult: The generated answer with the segments it was grounded on.

        Raises:
            InvalidInputError: If the query is empty.
            NotFoundError: If the document does not exist.
            DocumentPermissionError: If the requester may not read the document.
            NoMatchError: If the index holds no segment of the document.
            EmbeddingError | VectorIndexError | GenerationError: On gateway failures.
        """
        if not isinstance(query, str) or not query.strip():
            raise InvalidInputError("Valid query is required in request body")
        query = query.strip()

        document = await self._document_store.do_get_by_uuid(document_uuid)
        if document is None:
            raise NotFoundError("PDF with this UUID not found", context={"uuid": document_uuid})
        if permission_for(document, requester_id) == Permission.NONE:
            raise DocumentPermissionError("Access denied to this PDF", context={"uuid": document_uuid})

        self.logging.info("Answering query for document %s: '%s'", document_uuid, query)
        # a query fails fast, only indexing retries
        query_vector = await self._embed_client.do_embed_text(query, retries=0)
        self.logging.debug("Query vector dimension: %d", len(query_vector))

        hits = await self._rag_client.do_search(
            query_vector, self._top_k, FilterExpression.equals("document_uuid", document_uuid),
        )
        if not hits:
            raise NoMatchError(
                "No relevant content found for this document. Please confirm it was indexed.",
                context={"uuid": document_uuid},
            )
        self.logging.info("Found %d relevant segments for document %s.", len(hits), document_uuid)

        answer = await self._llm_client.do_generate(build_prompt(query, build_context(hits)))
        self.logging.info("Generated answer for document %s.", document_uuid, color="green")

        return AnswerResult(
            document_uuid=document.uuid,
            document_name=document.name,
            query=query,
            answer=answer,
            context_chunks_used=len(hits),
            segments=[
                RetrievedSegment(rank=rank, chunk_index=hit.chunk_index, score=hit.score, text=hit.text)
                for rank, hit in enumerate(hits)
            ],
        )
