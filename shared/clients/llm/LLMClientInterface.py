from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import AppError, GenerationError


class LLMClientInterface(ClientInterface):
    """Generative gateway: single-turn prompt in, text out."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL")
        self.temperature = helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.2)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    def _get_error_class(self) -> type[AppError]:
        return GenerationError

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict]) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw chat API response.

        Raises:
            GenerationError: If the response does not contain a reply.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(self, messages: list[dict]) -> str:
        """Send a chat/completion request and return the assistant reply text.

        Args:
            messages (list[dict]): OpenAI-format messages.

        Returns:
            str: The assistant reply text.

        Raises:
            GenerationError: If the HTTP request fails or the reply is missing.
        """
        body = self.get_chat_payload(messages)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        try:
            response_data = response.json()
        except ValueError as exc:
            raise GenerationError("Chat response is not valid JSON", detail=response.text[:200]) from exc
        return self.extract_chat_response(response_data)

    async def do_generate(self, prompt: str) -> str:
        """Single-turn generation.

        Args:
            prompt (str): The full prompt.

        Returns:
            str: The generated text, stripped.
        """
        reply = await self.do_chat([{"role": "user", "content": prompt}])
        return reply.strip()
