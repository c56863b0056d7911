from typing import Any

from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """
    Instantiates the client of one client type for the engine named in configuration.

    The engine is read from {CLIENT_TYPE}_ENGINE (e.g. RAG_ENGINE=qdrant) and the
    class is imported from shared.clients.{client_type}.{engine}.{Prefix}{Engine},
    e.g. shared.clients.rag.qdrant.RAGClientQdrant.
    """

    def __init__(self, helper_config: HelperConfig, client_type: str, class_prefix: str, default_engine: str | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._client_type = client_type.lower()
        self._class_prefix = class_prefix
        self._default_engine = default_engine
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the engine name from ENV configuration.

        Returns:
            str: The capitalised engine name (e.g. "Qdrant").

        Raises:
            ValueError: If no engine is specified in the configuration.
        """
        env_key = f"{self._client_type.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(env_key, default=self._default_engine)
        if not engine or not engine.strip():
            raise ValueError(f"No {self._client_type} engine specified in configuration ({env_key}).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> Any:
        """
        Imports and instantiates the client class of the configured engine.

        Returns:
            Any: The client instance, implementing the interface of its client type.

        Raises:
            ValueError: If the engine is not supported.
        """
        engine = self._get_engine_from_env()
        class_name = f"{self._class_prefix}{engine}"
        module_path = f"shared.clients.{self._client_type}.{engine.lower()}.{class_name}"
        try:
            module = __import__(module_path, fromlist=[class_name])
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self._client_type} engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self._client_type, engine)
        return client

    def get_client(self) -> Any:
        """
        Returns the instantiated client.
        """
        return self.client
