from abc import ABC, abstractmethod

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import DocumentRecord, IndexingStatus, ListScope


class DocumentStoreInterface(ABC):
    """Metadata record store. The record is the canonical existence marker of a document.

    Supports point lookup by uuid, filtered listing and atomic single-record
    writes. Configuration keys follow STORE_{ENGINE}_{KEY}.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        for config in self._get_required_config():
            _ = self.get_config_val(config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_client_type(self) -> str:
        return "store"

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        pass

    def get_config_val(self, raw_key: str, default=None, val_type: str = "string"):
        key = f"STORE_{self.get_engine_name().upper()}_{raw_key.upper()}"
        if val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        if val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        return self._helper_config.get_string_val(key, default=default)

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    @abstractmethod
    async def boot(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def do_healthcheck(self) -> bool:
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_create(self, record: DocumentRecord) -> DocumentRecord:
        """Insert a new record.

        Returns:
            DocumentRecord: The stored record with its internal id assigned.

        Raises:
            InvalidInputError: If a record with the same uuid exists.
        """
        pass

    @abstractmethod
    async def do_get_by_uuid(self, document_uuid: str) -> DocumentRecord | None:
        pass

    @abstractmethod
    async def do_update(self, record: DocumentRecord) -> bool:
        """Replace an existing record.

        Returns:
            bool: False if the record no longer exists. The store never re-creates it.
        """
        pass

    @abstractmethod
    async def do_delete(self, document_uuid: str) -> bool:
        """Delete a record.

        Returns:
            bool: True if a record was removed.
        """
        pass

    @abstractmethod
    async def do_list(
        self,
        user_id: str | None = None,
        status: IndexingStatus | None = None,
        scope: ListScope = ListScope.OWNED,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[DocumentRecord]:
        """List records, newest first.

        Args:
            user_id (str | None): The user the scope is relative to. None lists every record.
            status (IndexingStatus | None): Only records in this state.
            scope (ListScope): owned (uploaded by the user), shared (shared with
                the user), public, or all of these together.
            limit (int | None): Page size, None for no limit.
            offset (int): Number of matching records to skip.
        """
        pass

    @abstractmethod
    async def do_count(
        self,
        user_id: str | None = None,
        status: IndexingStatus | None = None,
        scope: ListScope = ListScope.OWNED,
    ) -> int:
        """Count the records do_list() would return without limit and offset."""
        pass
