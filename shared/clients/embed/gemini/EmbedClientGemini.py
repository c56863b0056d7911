from typing import Tuple

import httpx
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import EmbeddingError


class EmbedClientGemini(EmbedClientInterface):
    """Google Gemini embeddings via the Generative Language REST API.

    Single texts go to :embedContent, several texts to :batchEmbedContents.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com/v1beta", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._dimensions = int(self.get_config_val("DIMENSIONS", default=768, val_type="number"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Gemini"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="DIMENSIONS", val_type="number", default=768),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-goog-api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/{self._model_path()}"

    def get_endpoint_embedding(self, batch: bool = False) -> str:
        action = "batchEmbedContents" if batch else "embedContent"
        return f"/{self._model_path()}:{action}"

    def _model_path(self) -> str:
        model = self.embed_model
        return model if model.startswith("models/") else f"models/{model}"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the Gemini request body.

        Returns:
            dict: {"content": {...}, "outputDimensionality": n} for one text,
                  {"requests": [{"model": ..., "content": {...}, "outputDimensionality": n}, ...]} for several.
        """
        # the collection is sized from DIMENSIONS
        if len(texts) == 1:
            return {"content": {"parts": [{"text": texts[0]}]}, "outputDimensionality": self._dimensions}
        return {
            "requests": [
                {
                    "model": self._model_path(),
                    "content": {"parts": [{"text": text}]},
                    "outputDimensionality": self._dimensions,
                }
                for text in texts
            ]
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        if "embedding" in response_data:
            items = [response_data.get("embedding") or {}]
        else:
            items = response_data.get("embeddings") or []
        vectors = [(item or {}).get("values") for item in items]
        if not vectors or any(not v for v in vectors):
            raise EmbeddingError(
                "Empty or invalid embedding from Gemini",
                detail=f"Response keys: {list(response_data.keys())}",
            )
        return vectors

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        # the models endpoint does not report the output dimension
        return self._dimensions, self.embed_distance
