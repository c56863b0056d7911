import httpx
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import GenerationError


class LLMClientOllama(LLMClientInterface):
    """Single-turn answers from a local or remote Ollama server via /api/chat."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        # 0 keeps the server's context window
        self._num_ctx = int(self.get_config_val("NUM_CTX", default=0, val_type="number"))
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="", val_type="string")

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

    def _get_endpoint_chat(self) -> str:
        return "/api/chat"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict]) -> dict:
        """Build a non-streaming /api/chat body.

        Returns:
            dict: {"model": "...", "messages": [...], "stream": False, "options": {"temperature": ...}}
                plus "keep_alive" and options.num_ctx when configured.
        """
        options: dict = {"temperature": self.temperature}
        if self._num_ctx > 0:
            options["num_ctx"] = self._num_ctx
        payload = {"model": self.chat_model, "messages": messages, "stream": False, "options": options}
        if self._keep_alive:
            payload["keep_alive"] = self._keep_alive
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        if response_data.get("error"):
            raise GenerationError("Ollama reported an error", detail=str(response_data["error"]))
        content = (response_data.get("message") or {}).get("content")
        if content is None:
            raise GenerationError(
                "Ollama chat response does not contain a message",
                detail=f"Response keys: {list(response_data.keys())}",
            )
        if response_data.get("done_reason") == "length":
            self.logging.warning("Ollama answer hit the token limit and is truncated.")
        return content
