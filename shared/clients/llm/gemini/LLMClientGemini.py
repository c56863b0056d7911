import httpx
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import GenerationError


class LLMClientGemini(LLMClientInterface):
    """Google Gemini text generation via :generateContent."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com/v1beta", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

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
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-goog-api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _model_path(self) -> str:
        model = self.chat_model
        return model if model.startswith("models/") else f"models/{model}"

    def _get_endpoint_healthcheck(self) -> str:
        return f"/{self._model_path()}"

    def _get_endpoint_chat(self) -> str:
        return f"/{self._model_path()}:generateContent"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict]) -> dict:
        # gemini names the assistant role "model" and keeps system text apart
        system_parts = [{"text": m["content"]} for m in messages if m.get("role") == "system"]
        contents = [
            {
                "role": "model" if m.get("role") == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m.get("role") != "system"
        ]
        payload: dict = {
            "contents": contents,
            "generationConfig": {"temperature": self.temperature},
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        candidates = response_data.get("candidates") or []
        if not candidates:
            raise GenerationError(
                "Gemini response contains no candidates",
                detail=str(response_data.get("promptFeedback", "")),
            )
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            raise GenerationError("Gemini response contains no text", detail=str(candidates[0].get("finishReason", "")))
        return text
