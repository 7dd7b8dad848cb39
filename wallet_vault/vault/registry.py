"""
CredentialRegistry — Persistence of the single credential descriptor.
"""
import logging
from typing import Union

from ..storage import CREDENTIALS, VaultStorage
from .models import PRIMARY_CREDENTIAL_ID, PRFCredential, PasswordCredential, parse_credential

logger = logging.getLogger("wallet.vault")


class CredentialRegistry:
    """Reads and writes the ``primary`` credential record."""

    def __init__(self, storage: VaultStorage):
        self._storage = storage

    async def get(self) -> Union[PRFCredential, PasswordCredential, None]:
        """Return the stored credential descriptor, or None if absent.

        Raises:
            StorageError: If the stored record is unreadable.
        """
        record = await self._storage.get(CREDENTIALS, PRIMARY_CREDENTIAL_ID)
        if record is None:
            return None
        return parse_credential(record)

    async def save(self, credential: Union[PRFCredential, PasswordCredential]) -> None:
        """Upsert the singleton descriptor.

        A second call overwrites the first; ``VaultSession`` refuses to
        reach this twice.
        """
        await self._storage.put(CREDENTIALS, credential.model_dump())
        logger.debug("Credential saved: method=%s", credential.method)
