"""FastAPI application entry point for pdf_rag_bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.models.errors import AppError, InternalError
from services.indexing.IndexingService import IndexingService
from services.deletion.DeletionService import DeletionService
from services.answering.AnswerService import AnswerService
from services.documents.DocumentService import DocumentService
from server.core.exception_handlers import register_exception_handlers
from server.routers.DocumentRouter import router as document_router
from server.routers.QueryRouter import router as query_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)
    helper_config = app.state.helper_config

    embed_client = ClientManager(helper_config, "embed", "EmbedClient").get_client()
    rag_client = ClientManager(helper_config, "rag", "RAGClient").get_client()
    llm_client = ClientManager(helper_config, "llm", "LLMClient").get_client()
    storage_client = ClientManager(helper_config, "storage", "StorageClient", default_engine="cloudinary").get_client()
    document_store = ClientManager(helper_config, "store", "DocumentStore", default_engine="sql").get_client()
    clients = [embed_client, rag_client, llm_client, storage_client, document_store]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    await check_connections(embed_client, rag_client, llm_client, storage_client, document_store)
    await ensure_collection(embed_client, rag_client)

    app.state.indexing_service = IndexingService(
        helper_config=helper_config,
        embed_client=embed_client,
        rag_client=rag_client,
        storage_client=storage_client,
        document_store=document_store,
    )
    app.state.deletion_service = DeletionService(
        helper_config=helper_config,
        rag_client=rag_client,
        storage_client=storage_client,
        document_store=document_store,
    )
    app.state.answer_service = AnswerService(
        helper_config=helper_config,
        embed_client=embed_client,
        rag_client=rag_client,
        llm_client=llm_client,
        document_store=document_store,
    )
    app.state.document_service = DocumentService(helper_config=helper_config, document_store=document_store)

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    for client in clients:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="pdf_rag_bridge",
    description=(
        "Retrieval-augmented question answering over uploaded PDFs. "
        "Documents are uploaded via POST /documents, segmented, embedded and indexed into a "
        "vector database, and answered from via POST /query/{document_uuid}."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(document_router)
app.include_router(query_router)


async def check_connections(
    embed_client: EmbedClientInterface,
    rag_client: RAGClientInterface,
    llm_client: LLMClientInterface,
    storage_client: StorageClientInterface,
    document_store: DocumentStoreInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    Storage and LLM failures are non-fatal (uploads or answers will fail later,
    but the server stays up). Embedding, vector index and record store failures
    are fatal since no request can be served without them.

    Raises:
        InternalError: If a critical backend is not reachable.
    """
    for client in (storage_client, llm_client):
        try:
            result: httpx.Response = await client.do_healthcheck()
        except AppError as exc:
            logging.warning(
                "%s client '%s' is not reachable: %s",
                client.get_client_type(), client.__class__.__name__, exc,
            )
            continue
        if not result.is_success:
            logging.warning(
                "%s client '%s' is not reachable (status %d).",
                client.get_client_type(), client.__class__.__name__, result.status_code,
            )

    for client in (embed_client, rag_client):
        result = await client.do_healthcheck()
        if not result.is_success:
            raise InternalError(
                f"{client.get_client_type()} client '{client.__class__.__name__}' is not reachable "
                f"(status {result.status_code}). Cannot serve requests."
            )

    if not await document_store.do_healthcheck():
        raise InternalError(f"Document store '{document_store.__class__.__name__}' is not reachable.")


async def ensure_collection(embed_client: EmbedClientInterface, rag_client: RAGClientInterface) -> None:
    """Create the vector collection sized to the embedding model if it is missing."""
    if await rag_client.do_existence_check():
        logging.info("Vector collection already exists.")
        return
    vector_size, distance = await embed_client.do_fetch_embedding_vector_size()
    await rag_client.do_create_collection(vector_size, distance)
    logging.info("Created vector collection (size=%d, distance=%s).", vector_size, distance, color="green")


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("API_SERVER_PORT", "8000"))
    logging.info(
        "Starting pdf_rag_bridge API Server v%s from root dir: %s on port %d...",
        app_version,
        os.environ.get("ROOT_DIR", os.getcwd()),
        port,
    )
    uvicorn.run(app, host="0.0.0.0", port=port)
