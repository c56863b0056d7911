from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import StoredObject
from shared.models.errors import AppError, StorageError


class StorageClientInterface(ClientInterface):
    """Object store gateway for the uploaded binaries."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "storage"

    def _get_error_class(self) -> type[AppError]:
        return StorageError

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_upload(self, content: bytes, filename: str, owner_id: str) -> StoredObject:
        """Upload a binary.

        Args:
            content (bytes): The file content.
            filename (str): Original file name.
            owner_id (str): Id of the uploading user, used for the folder layout.

        Returns:
            StoredObject: Descriptor with a durable URL and the public id.

        Raises:
            StorageError: If the upload fails.
        """
        pass

    @abstractmethod
    async def do_delete(self, public_id: str) -> bool:
        """Delete a binary.

        Args:
            public_id (str): Object store key.

        Returns:
            bool: True if the object store confirmed the delete.

        Raises:
            StorageError: On transport failure.
        """
        pass

    @abstractmethod
    async def do_info(self, public_id: str) -> dict | None:
        """Fetch the metadata of a binary.

        Returns:
            dict | None: The object store metadata, or None if the object does not exist.
        """
        pass

    async def do_exists(self, public_id: str) -> bool:
        return await self.do_info(public_id) is not None
