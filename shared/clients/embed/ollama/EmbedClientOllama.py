from typing import Tuple

import httpx
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import EmbeddingError


class EmbedClientOllama(EmbedClientInterface):
    """Embeddings from an Ollama server. /api/embed takes one or many inputs per call."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def get_endpoint_embedding(self, batch: bool = False) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        """
        Returns:
            dict: {"model": "...", "input": [...]}
        """
        return {"model": self.embed_model, "input": texts}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        if response_data.get("error"):
            raise EmbeddingError("Ollama reported an error", detail=str(response_data["error"]))
        embeddings = response_data.get("embeddings")
        if not embeddings or not embeddings[0]:
            raise EmbeddingError(
                "Ollama response does not contain embeddings",
                detail=f"Response keys: {list(response_data.keys())}",
            )
        return embeddings

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """Read the vector size from the "<architecture>.embedding_length" entry of /api/show."""
        response = await self.do_request(
            method="POST",
            json={"model": self.embed_model},
            endpoint=self.get_endpoint_model_details(),
            raise_on_error=True,
        )
        model_info: dict = response.json().get("model_info") or {}
        size = next((value for key, value in model_info.items() if key.endswith(".embedding_length")), None)
        if size is None:
            raise EmbeddingError(f"Could not determine the embedding size of model {self.embed_model}")
        return int(size), self.embed_distance
