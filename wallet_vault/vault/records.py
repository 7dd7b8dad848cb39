"""
KeyRecordStore — Persistence of encrypted key records.

Ids are assigned by storage, are unique and only ever increase. Records are
returned in insertion order.
"""
import logging

from ..exceptions import NotFoundError
from ..storage import KEYS, VaultStorage
from .models import KeyRecord

logger = logging.getLogger("wallet.vault")


class KeyRecordStore:
    """CRUD over the ``keys`` partition."""

    def __init__(self, storage: VaultStorage):
        self._storage = storage

    async def add(self, record: KeyRecord) -> int:
        """Persist a new record and return its assigned id.

        Any id already set on ``record`` is ignored.
        """
        data = record.model_dump()
        data["id"] = None
        record_id = await self._storage.put(KEYS, data)
        logger.debug("Key record added: id=%s", record_id)
        return record_id

    async def records(self) -> list[KeyRecord]:
        """Return all records in insertion order."""
        rows = await self._storage.get_all(KEYS)
        return [KeyRecord.from_storage(row) for row in rows]

    async def count(self) -> int:
        return len(await self._storage.get_all(KEYS))

    async def get(self, record_id: int) -> KeyRecord:
        """Return one record.

        Raises:
            NotFoundError: If ``record_id`` does not exist.
        """
        row = await self._storage.get(KEYS, record_id)
        if row is None:
            raise NotFoundError(f"Key {record_id} not found")
        return KeyRecord.from_storage(row)

    async def update_label(self, record_id: int, label: str) -> KeyRecord:
        """Rename a record.

        Raises:
            NotFoundError: If ``record_id`` does not exist.
        """
        record = await self.get(record_id)
        record.label = label
        await self._storage.put(KEYS, record.model_dump())
        logger.debug("Key record relabelled: id=%s", record_id)
        return record

    async def delete(self, record_id: int) -> None:
        """Remove a record.

        Raises:
            NotFoundError: If ``record_id`` does not exist.
        """
        await self.get(record_id)
        await self._storage.delete(KEYS, record_id)
        logger.debug("Key record deleted: id=%s", record_id)
